import streamlit as st

from pdf_pipeline import PDF_BACKENDS
from recon_pipeline import DEFAULT_TOTAL_COL, DEFAULT_VOUCHER_COL
from records import UploadedFile
from run_pipeline import NoTransactionsError, ReconConfig, run_reconciliation
from schedule_io import default_output_name, read_schedule, reconciled_to_bytes

st.set_page_config(page_title="Payment Reconciliation")

st.title("Payment Reconciliation")
st.markdown("""
Upload your **payment schedule** and the **transaction logs**:
- schedule workbook (.xlsx or .csv)
- settlement reports (.txt / .msg)
- NTB statement notices (.msg) and their PDFs

Each schedule row is matched to a transaction by voucher number / auth ID.
""")

st.subheader("Settings")

voucher_col = st.text_input(
    "Voucher number column",
    value=DEFAULT_VOUCHER_COL,
    help="Column in the schedule matched against the transaction auth ID.",
)
total_col = st.text_input(
    "Total column",
    value=DEFAULT_TOTAL_COL,
    help="Column in the schedule summed into the existing total.",
)
pdf_backend = st.selectbox("PDF reader", options=list(PDF_BACKENDS), index=0)

schedule_upload = st.file_uploader("📄 Payment schedule", type=["xlsx", "csv"])
log_uploads = st.file_uploader(
    "📁 Transaction logs", type=["txt", "msg", "pdf"], accept_multiple_files=True
)

if schedule_upload and log_uploads:
    status = st.empty()

    if st.button("▶️ Process files"):
        config = ReconConfig(
            voucher_col=voucher_col.strip() or DEFAULT_VOUCHER_COL,
            total_col=total_col.strip() or DEFAULT_TOTAL_COL,
            pdf_backend=pdf_backend,
        )
        status.info("⚙️ Running reconciliation... please wait")
        try:
            rows = read_schedule(
                schedule_upload.getvalue(), filename=schedule_upload.name, voucher_col=config.voucher_col
            )
            files = [UploadedFile(name=f.name, data=f.getvalue()) for f in log_uploads]
            result = run_reconciliation(rows, files, config)
        except NoTransactionsError as e:
            status.error(f"❌ {e}")
            for issue in e.issues:
                st.warning(str(issue))
        except (FileNotFoundError, ValueError) as e:
            status.error(f"❌ {e}")
        except Exception as e:
            status.error(f"❌ An error occurred during processing. Please check your files. ({e})")
        else:
            status.success("Reconciliation complete!")

            s = result.summary
            c1, c2, c3 = st.columns(3)
            c1.metric("Matched rows", f"{s.matched_count} / {len(rows)}")
            c2.metric("Existing total", f"{s.total_existing:,.2f}")
            c3.metric("Transaction total", f"{s.total_trx:,.2f}")
            c4, c5 = st.columns(2)
            c4.metric("Commission total", f"{s.total_commission:,.2f}")
            c5.metric("Net total", f"{s.total_net:,.2f}")

            if result.issues:
                st.subheader("File issues")
                for issue in result.issues:
                    st.warning(str(issue))

            st.download_button(
                label="⬇️ Download Results (.xlsx)",
                data=reconciled_to_bytes(result.table, result.columns),
                file_name=default_output_name(),
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            )
else:
    st.info("Please upload the schedule and at least one transaction log first.")
