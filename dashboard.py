from __future__ import annotations

import pandas as pd
import streamlit as st

from ticket_insights.analytics import get_dataset_list, get_dataset_summary, get_ticket_analytics
from ticket_insights.chat import ChatService, ChatSession
from ticket_insights.config import configure_logging, load_settings
from ticket_insights.constants import ANALYTICS_METRICS, METRIC_TITLES
from ticket_insights.db import create_db_engine, create_session_factory, init_db, session_scope
from ticket_insights.errors import TicketInsightsError
from ticket_insights.ingestion import ingest_upload
from ticket_insights.insights import build_analytics_view
from ticket_insights.llm import NarrativeClient
from ticket_insights.payloads import ComponentType
from ticket_insights.visualization import build_figure


st.set_page_config(page_title="Help Desk Ticket Insights", page_icon="📊", layout="wide")


@st.cache_resource(show_spinner=False)
def _services():
    settings = load_settings()
    configure_logging(settings.log_level)
    engine = create_db_engine(settings.database_url, echo=settings.sql_echo)
    init_db(engine)
    factory = create_session_factory(engine)
    return factory, ChatService(factory, narrator=NarrativeClient(settings))


session_factory, chat_service = _services()

st.title("Help Desk Ticket Insights")
st.caption("Upload a ticket export (Excel/CSV), explore resolution and satisfaction metrics, and ask questions in chat.")

with st.sidebar:
    st.header("Upload Dataset")
    uploaded = st.file_uploader("Ticket file", type=["csv", "xlsx", "xls"])
    dataset_name = st.text_input("Dataset name")
    if uploaded is not None and st.button("Ingest"):
        try:
            with session_scope(session_factory) as session:
                result = ingest_upload(session, uploaded.name, uploaded.getvalue(), name=dataset_name or None)
                st.success(
                    f"Stored {result.tickets_inserted} tickets in '{result.dataset.name}' "
                    f"({result.duplicates_skipped} duplicates skipped)."
                )
        except TicketInsightsError as exc:
            st.error(str(exc))

with session_scope(session_factory) as session:
    datasets = get_dataset_list(session)

if not datasets:
    st.info("No datasets found. Please upload a dataset first.")
    st.stop()

labels = {f"{item['name']} ({item['record_count']} tickets)": item["id"] for item in datasets}
dataset_id = labels[st.sidebar.selectbox("Dataset", list(labels))]

with session_scope(session_factory) as session:
    summary = get_dataset_summary(session, dataset_id)

col1, col2, col3, col4 = st.columns(4)
col1.metric("Tickets", f"{summary.record_count}")
col2.metric("Avg Resolution (days)", f"{summary.avg_resolution_time:.2f}")
col3.metric("Avg Satisfaction", f"{summary.avg_satisfaction_rate:.2f}/5")
col4.metric("Date Range", f"{summary.date_range['start'][:10]} to {summary.date_range['end'][:10]}")

metric_tabs = st.tabs([METRIC_TITLES[metric] for metric in ANALYTICS_METRICS] + ["Chat"])

for metric, tab in zip(ANALYTICS_METRICS, metric_tabs):
    with tab:
        with session_scope(session_factory) as session:
            view = build_analytics_view(get_ticket_analytics(session, dataset_id, metric))
        st.caption(view.description)
        for column, item in zip(st.columns(max(len(view.metrics), 1)), view.metrics):
            column.metric(item["label"], item["value"])
        fig = build_figure(view.chart_type, view.chart_data, view.title)
        if fig is not None:
            st.plotly_chart(fig, use_container_width=True)
        for insight in view.insights:
            st.write(f"- {insight}")
        st.info(view.ai_explanation)

with metric_tabs[-1]:
    if "chat" not in st.session_state or st.session_state.chat.active_dataset_id != dataset_id:
        st.session_state.chat = ChatSession(active_dataset_id=dataset_id)
    chat: ChatSession = st.session_state.chat

    for message in chat.messages:
        with st.chat_message(message.role):
            st.markdown(message.content)
            ui = message.ui
            if ui is None or ui.type is ComponentType.ERROR:
                continue
            if ui.type is ComponentType.ANALYTICS:
                fig = build_figure(ui.data.chart_type, ui.data.chart_data, ui.data.title)
            elif ui.type is ComponentType.DATA_VISUALIZATION:
                fig = build_figure(ui.data.chart_type, ui.data.data, ui.data.query)
            else:
                fig = None
            if fig is not None:
                st.plotly_chart(fig, use_container_width=True)
            if ui.type is ComponentType.REPORT:
                for section in ui.data.sections:
                    st.subheader(section.title)
                    st.write(section.content)
            elif ui.type is ComponentType.DATASET_LIST:
                st.dataframe(pd.DataFrame(ui.data), use_container_width=True)

    prompt = st.chat_input("Ask about this dataset")
    if prompt:
        chat_service.send_message(chat, prompt)
        st.rerun()
