"""UI components for the Streamlit document viewer."""

from __future__ import annotations

import pandas as pd
import pypdfium2 as pdfium
import streamlit as st


def render_stage_summary(stage: str, mode: str, frame: pd.DataFrame) -> None:
    """Render KPI cards for the configured stage."""
    total_bytes = int(pd.to_numeric(frame["SIZE"], errors="coerce").fillna(0).sum()) if not frame.empty else 0
    st.subheader("Stage")
    c1, c2, c3 = st.columns(3)
    c1.metric("Stage", stage)
    c2.metric("Mode", mode)
    c3.metric("Documents", len(frame))
    st.caption(f"{total_bytes / 1024:.1f} KB staged")


def render_pdf_preview(pdf_bytes: bytes, max_pages: int = 3, scale: float = 1.5) -> None:
    """Render the first pages of a PDF as images."""
    if not pdf_bytes:
        st.warning("Could not load document from stage.")
        return
    pdf = pdfium.PdfDocument(pdf_bytes)
    try:
        page_count = len(pdf)
        st.caption(f"{page_count} page(s), {len(pdf_bytes) / 1024:.1f} KB")
        for index in range(min(page_count, max_pages)):
            image = pdf[index].render(scale=scale).to_pil()
            st.image(image, caption=f"Page {index + 1}", use_container_width=True)
        if page_count > max_pages:
            st.info(f"Showing {max_pages} of {page_count} pages.")
    finally:
        pdf.close()
    st.download_button("Download", pdf_bytes, mime="application/pdf")


def render_extraction_table(frame: pd.DataFrame) -> None:
    """Render AI_EXTRACT answers."""
    st.subheader("Extracted Fields")
    if frame.empty:
        st.info("AI_EXTRACT returned no answers.")
        return
    st.dataframe(frame, use_container_width=True, hide_index=True)
