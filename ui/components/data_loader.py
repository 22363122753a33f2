"""
Session access for the Streamlit interface.

The comparison session is process-wide: it is created once per server process
and shared by every rerun of the page.
"""

import asyncio
import os
from typing import Any, Dict, Optional

import streamlit as st

from promptcompare.config import ConfigLoadError, Settings, configure_logging
from promptcompare.session import ComparisonSession


@st.cache_resource
def load_session() -> Dict[str, Any]:
    """Open the comparison session, or report why it could not be opened."""
    settings = Settings.from_env()
    configure_logging(settings)
    try:
        return {"session": ComparisonSession.open(settings), "error": None}
    except ConfigLoadError as e:
        return {"session": None, "error": str(e)}


def resolve_api_key(entered: str) -> Optional[str]:
    """The key typed into the sidebar, else OPENAI_API_KEY from the environment."""
    return entered.strip() or os.environ.get("OPENAI_API_KEY") or None


def run_prompt(session: ComparisonSession, prompt_id: str, scenario: int, api_key: Optional[str]) -> None:
    with st.spinner(f"Running {prompt_id}..."):
        asyncio.run(session.trigger(prompt_id, scenario, api_key))


def run_scenario(session: ComparisonSession, scenario: int, api_key: Optional[str]) -> None:
    with st.spinner(f"Running all prompts for scenario {scenario + 1}..."):
        asyncio.run(session.trigger_scenario(scenario, api_key))
