"""
Streamlit Frontend for the Finance Tracker

The screens a small business owner uses day to day: dashboard,
transactions, categories, reports and settings.

DESIGN PRINCIPLES:
1. Amounts are always shown the German way (1.234,56 €)
2. VAT and total are previewed before anything is saved
3. Errors are shown in plain language, nothing is silently corrected
4. Every page reads from the same session, so all figures agree
"""

import asyncio
from datetime import date

import streamlit as st

from finance_tracker.config import validate_all_settings
from finance_tracker.errors import FinanceTrackerError
from finance_tracker.formatting import format_amount, format_date
from finance_tracker.models.finance import (
    Category,
    CategoryType,
    RecurringFrequency,
    ReportTimeframe,
    TransactionDraft,
    TransactionQuery,
    TransactionType,
    UserSettings,
)
from finance_tracker.orchestrator import FinanceSession, create_app_components


# Page configuration
st.set_page_config(
    page_title="Finanzübersicht",
    page_icon="💶",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


TYPE_LABELS = {
    TransactionType.EXPENSE: "Ausgabe",
    TransactionType.REVENUE: "Einnahme",
}

CATEGORY_TYPE_LABELS = {
    CategoryType.EXPENSE: "Ausgaben",
    CategoryType.REVENUE: "Einnahmen",
    CategoryType.BOTH: "Beide",
}

TIMEFRAME_LABELS = {
    ReportTimeframe.MONTH: "Dieser Monat",
    ReportTimeframe.QUARTER: "Dieses Quartal",
    ReportTimeframe.YEAR: "Dieses Jahr",
}

FREQUENCY_LABELS = {
    RecurringFrequency.DAILY: "Täglich",
    RecurringFrequency.WEEKLY: "Wöchentlich",
    RecurringFrequency.MONTHLY: "Monatlich",
    RecurringFrequency.YEARLY: "Jährlich",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    session, sheets_client = create_app_components()
    run_async(session.load())
    return session, sheets_client


def money(session: FinanceSession, amount) -> str:
    return format_amount(amount, show_currency=session.settings.currency_display)


def main():
    """Main application entry point."""
    try:
        session, _ = get_components()
    except FinanceTrackerError as e:
        st.error(f"Daten konnten nicht geladen werden: {e.user_message}")
        st.stop()

    st.sidebar.title("💶 Finanzübersicht")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigation",
        ["📊 Dashboard", "🧾 Transaktionen", "🏷️ Kategorien", "📈 Berichte", "⚙️ Einstellungen"],
        index=0,
    )

    if page == "📊 Dashboard":
        render_dashboard_page(session)
    elif page == "🧾 Transaktionen":
        render_transactions_page(session)
    elif page == "🏷️ Kategorien":
        render_categories_page(session)
    elif page == "📈 Berichte":
        render_reports_page(session)
    elif page == "⚙️ Einstellungen":
        render_settings_page(session)


def render_dashboard_page(session: FinanceSession):
    """Monthly overview, expense pie data and quick stats."""
    st.title("📊 Dashboard")
    summary = session.dashboard()

    col1, col2, col3 = st.columns(3)
    col1.metric(
        f"Saldo {summary.current.label}",
        money(session, summary.current.balance),
        f"{summary.change_percentage} %",
    )
    col2.metric(
        f"Einnahmen {summary.year_to_date.year}",
        money(session, summary.year_to_date.revenue),
    )
    col3.metric(
        f"Ausgaben {summary.year_to_date.year}",
        money(session, summary.year_to_date.expenses),
    )

    st.markdown("### Einnahmen und Ausgaben")
    st.bar_chart(
        {
            "Einnahmen": [float(b.revenue) for b in summary.buckets],
            "Ausgaben": [float(b.expense) for b in summary.buckets],
        },
    )
    st.caption(" · ".join(b.label for b in summary.buckets))

    st.markdown("### Ausgaben nach Kategorie")
    if summary.expense_breakdown:
        st.dataframe(
            [
                {
                    "Kategorie": item.name,
                    "Betrag": money(session, item.total),
                    "Anteil": f"{item.share} %",
                }
                for item in summary.expense_breakdown
            ],
            use_container_width=True,
        )
    else:
        st.info("Noch keine Ausgaben erfasst.")

    st.markdown("### Umsatzsteuer")
    vat = summary.vat
    col1, col2, col3 = st.columns(3)
    col1.metric("Eingenommen", money(session, vat.collected))
    col2.metric("Gezahlt (Vorsteuer)", money(session, vat.paid))
    col3.metric(
        "Zahllast" if vat.is_payable else "Erstattung",
        money(session, abs(vat.balance)),
    )
    st.caption(f"{summary.transaction_count} Transaktionen insgesamt")


def render_transaction_form(session: FinanceSession):
    """Form to add a transaction with a live VAT preview."""
    transaction_type = st.radio(
        "Typ",
        list(TransactionType),
        format_func=lambda t: TYPE_LABELS[t],
        horizontal=True,
    )
    categories = session.applicable_categories(transaction_type)
    if not categories:
        st.warning("Bitte zuerst eine passende Kategorie anlegen.")
        return

    col1, col2 = st.columns(2)
    with col1:
        category = st.selectbox("Kategorie *", categories, format_func=lambda c: c.name)
        description = st.text_input("Beschreibung *")
        amount = st.text_input("Nettobetrag (€) *", placeholder="100,00")
        transaction_date = st.date_input("Datum", value=date.today(), format="DD.MM.YYYY")
    with col2:
        vat_exempt = st.checkbox("Umsatzsteuerfrei")
        manual_vat = "0"
        if not session.settings.auto_vat:
            manual_vat = st.text_input("MwSt (€)", value="0")
        recurring = st.checkbox("Wiederkehrend")
        frequency = None
        if recurring:
            frequency = st.selectbox(
                "Intervall",
                list(RecurringFrequency),
                format_func=lambda f: FREQUENCY_LABELS[f],
            )
        notes = st.text_area("Notizen")

    if amount:
        try:
            preview = session.preview_amounts(
                amount,
                category_id=category.id,
                manual_vat=manual_vat,
                vat_exempt=vat_exempt,
            )
            st.markdown(
                f"**MwSt:** {money(session, preview.vat)} · "
                f"**Brutto:** {money(session, preview.total)}"
            )
        except FinanceTrackerError as e:
            st.warning(e.user_message)

    if st.button("💾 Speichern", type="primary"):
        try:
            draft = TransactionDraft(
                transaction_date=transaction_date,
                type=transaction_type,
                category_id=category.id,
                description=description,
                amount=amount,
                manual_vat=manual_vat,
                vat_exempt=vat_exempt,
                notes=notes,
                recurring=recurring,
                recurring_frequency=frequency,
            )
        except ValueError as e:
            st.error(f"Bitte Eingaben prüfen: {e}")
            return

        result = session.validator.validate(draft, session.settings)
        if result.warnings or result.has_errors:
            st.markdown(f"""
            <div class="warning-box">
                <pre>{session.validator.get_user_friendly_summary(result)}</pre>
            </div>
            """, unsafe_allow_html=True)

        try:
            saved = run_async(session.add_transaction(draft))
        except FinanceTrackerError as e:
            st.error(e.user_message)
            return
        if saved:
            st.success(f"Gespeichert: {saved.description} ({money(session, saved.total_amount)})")


def render_transactions_page(session: FinanceSession):
    """Transaction table with search, filter, sort, delete and export."""
    st.title("🧾 Transaktionen")

    with st.expander("➕ Neue Transaktion"):
        render_transaction_form(session)

    col1, col2, col3 = st.columns(3)
    with col1:
        search = st.text_input("Suche", placeholder="Beschreibung, Kategorie, Notizen")
    with col2:
        type_filter = st.selectbox(
            "Typ",
            [None] + list(TransactionType),
            format_func=lambda t: "Alle" if t is None else TYPE_LABELS[t],
        )
    with col3:
        sort_field = st.selectbox(
            "Sortieren nach",
            ["transaction_date", "amount", "total_amount", "category", "description"],
            format_func=lambda f: {
                "transaction_date": "Datum",
                "amount": "Netto",
                "total_amount": "Brutto",
                "category": "Kategorie",
                "description": "Beschreibung",
            }[f],
        )
    descending = st.checkbox("Absteigend", value=True)

    query = TransactionQuery(
        search=search or None,
        sort_field=sort_field,
        descending=descending,
        transaction_type=type_filter,
    )
    transactions = session.search(query)

    if not transactions:
        st.info("Keine Transaktionen gefunden.")
        return

    st.dataframe(
        [
            {
                "Datum": format_date(t.transaction_date),
                "Typ": TYPE_LABELS[t.type],
                "Kategorie": session.registry.name_of(t.category_id),
                "Beschreibung": t.description,
                "Netto": money(session, t.amount),
                "MwSt": money(session, t.vat),
                "Brutto": money(session, t.total_amount),
            }
            for t in transactions
        ],
        use_container_width=True,
    )

    st.download_button(
        "⬇️ Als CSV exportieren",
        data=session.export_csv(query),
        file_name=f"transaktionen_{date.today().isoformat()}.csv",
        mime="text/csv",
    )

    to_delete = st.selectbox(
        "Transaktion löschen",
        [None] + transactions,
        format_func=lambda t: "–" if t is None else (
            f"{format_date(t.transaction_date)} {t.description} "
            f"({money(session, t.total_amount)})"
        ),
    )
    if to_delete and st.button("🗑️ Löschen"):
        try:
            run_async(session.delete_transaction(to_delete.id))
            st.rerun()
        except FinanceTrackerError as e:
            st.error(e.user_message)


def render_categories_page(session: FinanceSession):
    """List, add and delete categories."""
    st.title("🏷️ Kategorien")

    with st.form("new_category"):
        name = st.text_input("Name *")
        category_type = st.selectbox(
            "Gilt für",
            list(CategoryType),
            index=2,
            format_func=lambda t: CATEGORY_TYPE_LABELS[t],
        )
        color = st.color_picker("Farbe", value="#9CA3AF")
        vat_applicable = st.checkbox("Umsatzsteuerpflichtig", value=True)
        if st.form_submit_button("➕ Anlegen"):
            try:
                category = Category(
                    name=name,
                    type=category_type,
                    color=color,
                    vat_applicable=vat_applicable,
                )
                run_async(session.add_category(category))
                st.rerun()
            except ValueError as e:
                st.error(f"Bitte Eingaben prüfen: {e}")
            except FinanceTrackerError as e:
                st.error(e.user_message)

    st.markdown("---")
    for category in session.registry.all():
        col1, col2, col3 = st.columns([3, 2, 1])
        col1.markdown(
            f"<span style='color:{category.color}'>●</span> **{category.name}**",
            unsafe_allow_html=True,
        )
        col2.write(
            CATEGORY_TYPE_LABELS[category.type]
            + ("" if category.vat_applicable else " · ohne MwSt")
        )
        if col3.button("🗑️", key=f"delete_{category.id}"):
            try:
                run_async(session.delete_category(category.id))
                st.rerun()
            except FinanceTrackerError as e:
                st.error(e.user_message)


def render_reports_page(session: FinanceSession):
    """Profit and loss, breakdowns and VAT for a timeframe."""
    st.title("📈 Berichte")

    timeframe = st.selectbox(
        "Zeitraum",
        list(ReportTimeframe),
        format_func=lambda t: TIMEFRAME_LABELS[t],
    )
    report = session.report(timeframe)
    pnl = report.profit_and_loss

    st.caption(f"Ab {format_date(report.start_date)} · {report.transaction_count} Transaktionen")

    col1, col2, col3 = st.columns(3)
    col1.metric("Einnahmen (netto)", money(session, pnl.revenue))
    col2.metric("Ausgaben (brutto)", money(session, pnl.expenses))
    col3.metric("Gewinn", money(session, pnl.profit))

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("### Ausgaben nach Kategorie")
        for item in report.expense_breakdown:
            st.write(f"{item.name}: {money(session, item.total)} ({item.share} %)")
    with col2:
        st.markdown("### Einnahmen nach Kategorie")
        for item in report.revenue_breakdown:
            st.write(f"{item.name}: {money(session, item.total)} ({item.share} %)")

    st.markdown("### Umsatzsteuer")
    vat = report.vat
    st.write(f"Eingenommen: {money(session, vat.collected)}")
    st.write(f"Gezahlt: {money(session, vat.paid)}")
    label = "Zahllast" if vat.is_payable else "Erstattung"
    st.write(f"**{label}: {money(session, abs(vat.balance))}**")


def render_settings_page(session: FinanceSession):
    """User preferences and connection status."""
    st.title("⚙️ Einstellungen")

    current = session.settings
    auto_vat = st.checkbox(
        "MwSt automatisch berechnen (19 %)",
        value=current.auto_vat,
    )
    currency_display = st.checkbox(
        "Währungssymbol anzeigen",
        value=current.currency_display,
    )
    auto_backup = st.checkbox(
        "Automatische Sicherung",
        value=current.auto_backup,
    )

    if st.button("💾 Einstellungen speichern", type="primary"):
        try:
            run_async(session.update_settings(UserSettings(
                auto_vat=auto_vat,
                currency_display=currency_display,
                auto_backup=auto_backup,
            )))
            st.success("Einstellungen gespeichert.")
        except FinanceTrackerError as e:
            st.error(e.user_message)

    st.markdown("---")
    st.markdown("### Verbindungsstatus")

    status = validate_all_settings()
    for name, key in [("Google Sheets", "google_sheets"), ("Anwendung", "app")]:
        if status.get(key, False):
            st.success(f"✅ {name}")
        else:
            st.error(f"❌ {name} - {status.get(f'{key}_error', 'Nicht konfiguriert')}")


if __name__ == "__main__":
    main()
