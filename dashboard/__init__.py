"""Dashboard package exposing the Streamlit delivery app."""

from .app import APP_VIEWS, render_delivery_app

__all__ = ["APP_VIEWS", "render_delivery_app"]
