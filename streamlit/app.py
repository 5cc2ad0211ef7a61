"""Document viewer: preview staged PDFs and run AI_EXTRACT on them."""

from __future__ import annotations

import pandas as pd
import streamlit as st

from components import render_extraction_table, render_pdf_preview, render_stage_summary
from db import (
    extraction_frame,
    load_document_bytes,
    load_documents,
    load_setup_config,
    run_extraction,
)
from provisioning.setup.errors import SetupError


st.set_page_config(
    page_title="Document AI Viewer",
    page_icon="📄",
    layout="wide",
)
st.title("📄 Document AI Viewer")

config = load_setup_config()


@st.cache_data(ttl=60)
def _documents() -> pd.DataFrame:
    return load_documents(config)


@st.cache_data(ttl=600)
def _document_bytes(relative_path: str) -> bytes:
    return load_document_bytes(config, relative_path)


try:
    documents = _documents()
except SetupError as exc:
    st.error(exc.diagnostic())
    st.stop()

render_stage_summary(config.stage_fqn.upper(), config.stage.mode, documents)
if documents.empty:
    st.warning(
        "No files found on the stage. Upload a PDF and run "
        f"ALTER STAGE {config.stage_fqn.upper()} REFRESH."
    )
    st.stop()

selected = st.selectbox("Document", documents["RELATIVE_PATH"].tolist())
st.divider()

left, right = st.columns([3, 2])
with left:
    if selected.lower().endswith(".pdf"):
        render_pdf_preview(_document_bytes(selected))
    else:
        st.info("Preview is only available for PDF files.")

with right:
    st.subheader("Questions")
    questions_text = st.text_area(
        "One `field: question` per line",
        value="\n".join(f"{key}: {value}" for key, value in config.verify.response_format.items()),
        height=160,
    )
    questions = {
        key.strip(): value.strip()
        for key, _, value in (line.partition(":") for line in questions_text.splitlines())
        if key.strip() and value.strip()
    }
    if st.button("Run AI_EXTRACT", disabled=not questions):
        with st.spinner("Extracting..."):
            try:
                result = run_extraction(config, selected, questions)
            except SetupError as exc:
                st.error(exc.diagnostic())
                st.stop()
        render_extraction_table(extraction_frame(result))
