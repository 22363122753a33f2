"""
Prompt Compare Streamlit Interface

Side-by-side comparison of prompt outputs across scenarios. Variables shared
by several prompts are edited once per scenario; each prompt can be run per
scenario and its latest metrics and output are shown beside the others.

Run with: streamlit run ui/streamlit_app.py
"""

import sys
from pathlib import Path

import streamlit as st

# Add parent directory to path for imports
sys.path.append(str(Path(__file__).parent.parent))

from components.data_loader import load_session, resolve_api_key, run_prompt, run_scenario
from promptcompare.comparison import (
    comparison_frame,
    format_metrics,
    non_main_summary,
    results_frame,
    unfilled_placeholders,
)
from promptcompare.storage import StorageError
from promptcompare.variables import main_variable

st.set_page_config(
    page_title="Prompt Compare",
    layout="wide",
    initial_sidebar_state="expanded"
)


def main():
    """Main application orchestrator."""
    st.title("Prompt Compare")
    st.markdown("Side-by-side comparison of prompt outputs across scenarios")

    loaded = load_session()
    if loaded["error"]:
        st.error(f"Configuration Error: {loaded['error']}")
        st.info("Fix the prompt configuration and reload the page.")
        return

    session = loaded["session"]

    with st.sidebar:
        st.header("Provider")
        api_key = resolve_api_key(st.text_input("API key", type="password"))
        if api_key is None:
            st.warning("No API key set; runs will rely on provider defaults.")

        for prompt_id, error in session.config.rejected.items():
            st.warning(f"Prompt '{prompt_id}' disabled: {error}")

        st.header("Cache")
        if st.button("Clear Results", disabled=len(session.results) == 0):
            try:
                session.results.clear()
            except StorageError as e:
                st.error(str(e))
            else:
                st.rerun()

    show_errors(session)

    scenario_tabs = st.tabs([f"Scenario {index + 1}" for index in session.scenarios])
    for scenario, tab in zip(session.scenarios, scenario_tabs):
        with tab:
            show_variable_form(session, scenario)
            show_comparison_view(session, scenario, api_key)

    with st.expander("All Results", expanded=False):
        st.dataframe(results_frame(session.config, session.results), width='stretch')


def show_errors(session):
    """Dismissible messages for failed runs."""
    for index, message in enumerate(list(session.errors)):
        col_message, col_dismiss = st.columns([10, 1])
        with col_message:
            st.error(message)
        with col_dismiss:
            if st.button("Dismiss", key=f"dismiss_{index}"):
                session.dismiss_error(index)
                st.rerun()


def show_variable_form(session, scenario: int):
    """Editable fields for every aggregated variable in one scenario."""
    variables = session.variables()
    values = session.scenario_values(scenario)

    main = main_variable(variables)
    if main:
        st.subheader(f"Main Variable: {main.name}")

    for variable in variables:
        label = f"{variable.name}" + (" (main)" if variable.is_main else "")
        current = values.get(variable.name, "")
        key = f"var_{scenario}_{variable.name}"

        if variable.options:
            options = list(variable.options)
            index = options.index(current) if current in options else 0
            entered = st.selectbox(label, options, index=index, key=key, help=variable.description)
        elif variable.is_main:
            entered = st.text_area(label, current, key=key, help=variable.description)
        else:
            entered = st.text_input(label, current, key=key, help=variable.description)

        if entered != current:
            try:
                session.set_variable(variable.name, scenario, entered)
            except StorageError as e:
                st.error(str(e))


def show_comparison_view(session, scenario: int, api_key):
    """Per-prompt run controls, metrics and outputs for one scenario."""
    st.subheader("Responses")

    if st.button("Run All", key=f"run_all_{scenario}"):
        run_scenario(session, scenario, api_key)
        st.rerun()

    prompts = session.config.prompts
    if not prompts:
        st.warning("No prompts configured.")
        return

    values = session.scenario_values(scenario)
    cols = st.columns(len(prompts))

    for col, prompt in zip(cols, prompts):
        with col:
            st.markdown(f"**{prompt.name}**")
            if prompt.description:
                st.caption(prompt.description)
            summary = non_main_summary(prompt, values)
            if summary:
                st.caption(summary)
            missing = unfilled_placeholders(prompt, values)
            if missing:
                st.caption("Unfilled: " + ", ".join(f"{{{name}}}" for name in missing))

            running = session.is_running(prompt.id, scenario)
            if st.button("Run", key=f"run_{prompt.id}_{scenario}", disabled=running):
                run_prompt(session, prompt.id, scenario, api_key)
                st.rerun()

            result = session.results.get(prompt.id, scenario)
            if result is None:
                st.caption("No data")
                continue

            for label, value in format_metrics(result.metrics).items():
                st.metric(label, value)

            if result.output:
                with st.expander(f"View Output ({len(result.output)} chars)", expanded=True):
                    st.markdown(result.output)
            else:
                st.warning("No output")

    st.subheader("Summary")
    st.dataframe(comparison_frame(session.config, session.results, scenario), width='stretch')


if __name__ == "__main__":
    main()
