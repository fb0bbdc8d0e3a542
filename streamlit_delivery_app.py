"""Streamlit entrypoint for the DeliveryMaster quote app."""
from __future__ import annotations

import streamlit as st

from dashboard.app import render_delivery_app


def main() -> None:
    """Configure the Streamlit page and render the app."""
    st.set_page_config(
        page_title="DeliveryMaster",
        layout="wide",
    )
    render_delivery_app()


if __name__ == "__main__":
    main()
