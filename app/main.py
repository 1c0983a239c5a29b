"""
Streamlit Frontend for Shared Cashbook

Pages:
1. Sign in / sign up (auth gate: nothing else renders without a session)
2. Books - owned and shared books with balances
3. Book detail - totals, search, entries grouped by date with running
   balance, CSV import/export, members
4. Entry form - add or edit an entry with attachments
5. Entry detail - one entry with its images
6. Settings - connection status

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Clear error messages in simple language
3. Visual feedback for all operations
4. Only offer actions the user's role allows
"""

import asyncio
from datetime import datetime
from uuid import UUID

import streamlit as st

from cashbook.access import AccessDeniedError, can_edit_entries, can_manage_book
from cashbook.config import get_settings, validate_all_settings
from cashbook.interchange import (
    CSVImportError,
    format_amount,
    format_display_date,
    format_display_time,
)
from cashbook.ledger import ALL_TYPES, compute_totals, filter_entries, group_entries_by_date
from cashbook.models import (
    AccessLevel,
    CATEGORIES,
    DEFAULT_CATEGORY,
    DEFAULT_PAYMENT_MODE,
    PAYMENT_MODES,
    Attachment,
    AttachmentKind,
    EntryType,
    MemberRole,
)
from cashbook.orchestrator import AppComponents, create_app_components
from cashbook.services.attachments import AttachmentError
from cashbook.services.auth import AuthError
from cashbook.services.storage import DuplicateError, NotFoundError, StorageError
from cashbook.validation import EntryValidationError


# Page configuration
st.set_page_config(
    page_title="Shared Cashbook",
    page_icon="📒",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .cash-in { color: #28a745; font-weight: bold; }
    .cash-out { color: #dc3545; font-weight: bold; }
    .running { color: #6c757d; font-size: 0.9em; }
    .date-header {
        padding: 6px 12px;
        background-color: #f1f3f5;
        border-radius: 6px;
        margin: 12px 0 4px 0;
        font-weight: bold;
    }
</style>
""", unsafe_allow_html=True)

# Errors shown to the user as a notification; the action is abandoned
USER_FACING_ERRORS = (
    StorageError,
    AttachmentError,
    AuthError,
    CSVImportError,
    AccessDeniedError,
    ValueError,
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components(use_storage=True)


def go_to(page: str, **state):
    st.session_state.page = page
    for key, value in state.items():
        st.session_state[key] = value
    st.rerun()


def flash(message: str):
    """Show `message` once, on the next run."""
    st.session_state.flash = message
    st.rerun()


def money(amount) -> str:
    return f"₹{amount:,.2f}"


def main():
    """Main application entry point."""
    components = get_components()

    if "auth_session" not in st.session_state:
        st.session_state.auth_session = None
    if "page" not in st.session_state:
        st.session_state.page = "books"

    if st.session_state.auth_session is None:
        render_auth_page(components)
        return

    session = st.session_state.auth_session

    st.sidebar.title("📒 Shared Cashbook")
    st.sidebar.markdown(f"Signed in as **{session.email}**")
    if components.storage_backend == "memory":
        st.sidebar.warning("Storage not configured - data is kept in memory only")
    st.sidebar.markdown("---")

    if st.sidebar.button("📚 My Books"):
        go_to("books")
    if st.sidebar.button("⚙️ Settings"):
        go_to("settings")
    if st.sidebar.button("🚪 Sign out"):
        run_async(components.auth_service.sign_out(session))
        st.session_state.clear()
        st.rerun()

    message = st.session_state.pop("flash", None)
    if message:
        st.success(message)

    page = st.session_state.page
    if page == "book":
        render_book_page(components, session.user_id)
    elif page == "entry_form":
        render_entry_form_page(components, session.user_id)
    elif page == "entry_detail":
        render_entry_detail_page(components, session.user_id)
    elif page == "settings":
        render_settings_page(components)
    else:
        render_books_page(components, session.user_id)


def render_auth_page(components: AppComponents):
    """Sign in / sign up."""
    st.title("📒 Shared Cashbook")
    st.markdown("Keep track of cash in and cash out, together.")

    sign_in_tab, sign_up_tab = st.tabs(["Sign in", "Create account"])

    with sign_in_tab:
        with st.form("sign_in"):
            email = st.text_input("Email")
            password = st.text_input("Password", type="password")
            if st.form_submit_button("Sign in", type="primary"):
                try:
                    st.session_state.auth_session = run_async(
                        components.auth_service.sign_in(email, password)
                    )
                    go_to("books")
                except USER_FACING_ERRORS as e:
                    st.error(str(e))

    with sign_up_tab:
        with st.form("sign_up"):
            email = st.text_input("Email", key="sign_up_email")
            password = st.text_input("Password", type="password", key="sign_up_password")
            confirm = st.text_input("Confirm password", type="password")
            if st.form_submit_button("Create account", type="primary"):
                if password != confirm:
                    st.error("Passwords do not match")
                else:
                    try:
                        st.session_state.auth_session = run_async(
                            components.auth_service.sign_up(email, password)
                        )
                        go_to("books")
                    except USER_FACING_ERRORS as e:
                        st.error(str(e))


def render_books_page(components: AppComponents, user_id: UUID):
    """Render the book list."""
    st.title("📚 My Books")

    with st.expander("➕ New book"):
        with st.form("create_book", clear_on_submit=True):
            name = st.text_input("Book name", placeholder="e.g. Household, Shop, Trip to Goa")
            if st.form_submit_button("Create", type="primary"):
                try:
                    book = run_async(components.book_flow.create_book(user_id, name))
                    st.success(f"Created {book.name}")
                except USER_FACING_ERRORS as e:
                    st.error(f"Could not create book: {e}")

    try:
        summaries = run_async(components.book_flow.list_books(user_id))
    except USER_FACING_ERRORS as e:
        st.error(f"Could not load books: {e}")
        return

    if not summaries:
        st.info("No books yet. Create your first book above.")
        return

    for summary in summaries:
        col1, col2, col3 = st.columns([4, 2, 1])
        with col1:
            st.markdown(f"### {summary.book.name}")
            shared = "" if summary.access == AccessLevel.OWNER else f" · shared with you ({summary.access.value})"
            st.caption(
                f"Updated {summary.book.updated_at.strftime('%d %B %Y')} · "
                f"{summary.members_count} member(s){shared}"
            )
        with col2:
            st.metric("Balance", money(summary.balance))
        with col3:
            if st.button("Open", key=f"open_{summary.book.id}"):
                go_to("book", current_book_id=summary.book.id)
        st.markdown("---")


def render_book_page(components: AppComponents, user_id: UUID):
    """Render one book: totals, entries, import/export, members."""
    book_id = st.session_state.get("current_book_id")
    try:
        ledger = run_async(components.book_flow.open_book(book_id, user_id))
    except NotFoundError:
        st.warning("This book no longer exists.")
        go_to("books")
        return
    except USER_FACING_ERRORS as e:
        st.error(str(e))
        return

    book = ledger.book
    st.title(f"📒 {book.name}")

    # Filters
    col1, col2 = st.columns([3, 2])
    with col1:
        search = st.text_input("🔍 Search remark or amount")
    with col2:
        type_filter = st.radio(
            "Show",
            options=[ALL_TYPES, EntryType.CASH_IN.value, EntryType.CASH_OUT.value],
            format_func=lambda t: "All" if t == ALL_TYPES else EntryType(t).label,
            horizontal=True,
        )

    visible = filter_entries(ledger.entries, search, type_filter)
    totals = compute_totals(visible)

    col1, col2, col3 = st.columns(3)
    col1.metric("Total In", money(totals.total_in))
    col2.metric("Total Out", money(totals.total_out))
    col3.metric("Net Balance", money(totals.net))

    editable = can_edit_entries(ledger.access)

    if editable:
        col1, col2 = st.columns(2)
        with col1:
            if st.button("➕ Cash In", type="primary"):
                go_to("entry_form", editing_entry_id=None, form_type=EntryType.CASH_IN.value)
        with col2:
            if st.button("➖ Cash Out"):
                go_to("entry_form", editing_entry_id=None, form_type=EntryType.CASH_OUT.value)

    # Entries grouped by date
    st.markdown("---")
    if not visible:
        st.info("No entries to show.")
    balances = ledger.balances_by_entry()
    for day, entries in group_entries_by_date(visible).items():
        st.markdown(f'<div class="date-header">{day}</div>', unsafe_allow_html=True)
        for entry in entries:
            css = "cash-in" if entry.type == EntryType.CASH_IN else "cash-out"
            sign = "+" if entry.type == EntryType.CASH_IN else "-"
            col1, col2, col3 = st.columns([5, 3, 1])
            with col1:
                st.markdown(f"**{entry.remark or entry.type.label}**")
                attachments = f" · 📎 {len(entry.attachments)}" if entry.attachments else ""
                st.caption(
                    f"{format_display_time(entry.entry_time)} · {entry.payment_mode} · "
                    f"{entry.category}{attachments}"
                )
            with col2:
                st.markdown(
                    f'<span class="{css}">{sign}{money(entry.amount)}</span><br>'
                    f'<span class="running">Balance: {money(balances[entry.id])}</span>',
                    unsafe_allow_html=True,
                )
            with col3:
                if st.button("View", key=f"view_{entry.id}"):
                    go_to("entry_detail", current_entry_id=entry.id)

    st.markdown("---")
    render_import_export(components, ledger, user_id, editable)

    if can_manage_book(ledger.access):
        render_members(components, ledger, user_id)
        render_book_admin(components, ledger, user_id)


def render_import_export(components: AppComponents, ledger, user_id: UUID, editable: bool):
    book = ledger.book
    col1, col2 = st.columns(2)

    with col1:
        st.subheader("📥 Import CSV")
        if editable:
            uploaded = st.file_uploader("CSV file", type=["csv"], key=f"csv_{book.id}")
            if uploaded and st.button("Import entries"):
                try:
                    content = uploaded.getvalue().decode("utf-8")
                    imported = run_async(
                        components.entry_flow.import_csv(book.id, user_id, content)
                    )
                    flash(f"Imported {len(imported)} entries")
                except UnicodeDecodeError:
                    st.error("The file is not UTF-8 text")
                except USER_FACING_ERRORS as e:
                    st.error(f"Import failed, nothing was added. {e}")
        else:
            st.caption("Viewers cannot import entries.")

    with col2:
        st.subheader("📤 Export CSV")
        if st.button("Prepare export"):
            try:
                st.session_state[f"export_{book.id}"] = run_async(
                    components.entry_flow.export_csv(book.id, user_id)
                )
            except USER_FACING_ERRORS as e:
                st.error(f"Export failed: {e}")
        export = st.session_state.get(f"export_{book.id}")
        if export:
            filename, content = export
            st.download_button("⬇️ Download", data=content, file_name=filename, mime="text/csv")


def render_members(components: AppComponents, ledger, user_id: UUID):
    book = ledger.book
    st.markdown("---")
    st.subheader("👥 Members")

    for member in ledger.members:
        col1, col2 = st.columns([4, 1])
        with col1:
            pending = " (invitation pending)" if member.is_pending else ""
            st.markdown(f"**{member.email}** · {member.role.value}{pending}")
        with col2:
            if st.button("Remove", key=f"remove_{member.id}"):
                try:
                    run_async(components.member_flow.remove_member(book.id, user_id, member.id))
                    st.rerun()
                except USER_FACING_ERRORS as e:
                    st.error(str(e))

    with st.form("invite_member", clear_on_submit=True):
        email = st.text_input("Invite by email")
        role = st.selectbox(
            "Role",
            options=list(MemberRole),
            format_func=lambda r: "Viewer (read only)" if r == MemberRole.VIEWER else "Editor (can add entries)",
        )
        if st.form_submit_button("Invite"):
            try:
                run_async(components.member_flow.invite_member(book.id, user_id, email, role))
                flash(f"Invited {email.strip().lower()}")
            except DuplicateError as e:
                st.warning(str(e))
            except USER_FACING_ERRORS as e:
                st.error(str(e))


def render_book_admin(components: AppComponents, ledger, user_id: UUID):
    book = ledger.book
    with st.expander("⚙️ Book settings"):
        new_name = st.text_input("Rename book", value=book.name)
        if st.button("Save name") and new_name != book.name:
            try:
                run_async(components.book_flow.rename_book(book.id, user_id, new_name))
                st.rerun()
            except USER_FACING_ERRORS as e:
                st.error(str(e))

        st.warning("Deleting a book removes all its entries, attachments and members.")
        confirm = st.checkbox("I understand, delete this book")
        if st.button("🗑️ Delete book", disabled=not confirm):
            try:
                run_async(components.book_flow.delete_book(book.id, user_id))
                go_to("books", current_book_id=None)
            except USER_FACING_ERRORS as e:
                st.error(str(e))


def render_entry_form_page(components: AppComponents, user_id: UUID):
    """Add or edit an entry."""
    book_id = st.session_state.get("current_book_id")
    entry_id = st.session_state.get("editing_entry_id")

    existing = None
    if entry_id:
        try:
            existing = run_async(components.entry_flow.get_entry(book_id, entry_id, user_id))
        except NotFoundError:
            st.warning("This entry no longer exists.")
            go_to("book")
            return
        except USER_FACING_ERRORS as e:
            st.error(str(e))
            return

    default_type = existing.type.value if existing else st.session_state.get("form_type", EntryType.CASH_IN.value)
    now = datetime.now()

    st.title("✏️ Edit Entry" if existing else "➕ New Entry")

    with st.form("entry_form"):
        entry_type = st.radio(
            "Type",
            options=[EntryType.CASH_IN.value, EntryType.CASH_OUT.value],
            index=0 if default_type == EntryType.CASH_IN.value else 1,
            format_func=lambda t: EntryType(t).label,
            horizontal=True,
        )
        amount = st.text_input(
            "Amount (₹) *",
            value=format_amount(existing.amount) if existing else "",
            placeholder="e.g. 1,500.50",
        )
        col1, col2 = st.columns(2)
        with col1:
            entry_date = st.date_input("Date *", value=existing.entry_date if existing else now.date())
            payment_mode = st.selectbox(
                "Payment mode",
                options=PAYMENT_MODES,
                index=PAYMENT_MODES.index(existing.payment_mode)
                if existing and existing.payment_mode in PAYMENT_MODES
                else PAYMENT_MODES.index(DEFAULT_PAYMENT_MODE),
            )
        with col2:
            entry_time = st.time_input(
                "Time *",
                value=existing.entry_time if existing else now.time().replace(second=0, microsecond=0),
            )
            category = st.selectbox(
                "Category",
                options=CATEGORIES,
                index=CATEGORIES.index(existing.category)
                if existing and existing.category in CATEGORIES
                else CATEGORIES.index(DEFAULT_CATEGORY),
            )
        remark = st.text_area("Remark", value=existing.remark if existing else "")

        kept = []
        if existing and existing.attachments:
            st.markdown("**Current attachments** (untick to remove)")
            for i, attachment in enumerate(existing.attachments):
                label = "Uploaded image" if attachment.kind == AttachmentKind.UPLOADED else attachment.url
                if st.checkbox(f"{i + 1}. {label}", value=True, key=f"keep_{i}"):
                    kept.append(attachment)

        files = st.file_uploader(
            "Attach images",
            type=get_supported_types(),
            accept_multiple_files=True,
        )
        links = st.text_area("Image links (one per line)", placeholder="https://...")

        submitted = st.form_submit_button("💾 Save", type="primary")

    if st.button("Cancel"):
        go_to("book")

    if not submitted:
        return

    linked = [
        Attachment(url=line.strip(), kind=AttachmentKind.LINKED)
        for line in links.splitlines()
        if line.strip()
    ]

    try:
        draft, result = run_async(components.entry_flow.build_draft(
            book_id,
            user_id,
            amount=amount,
            entry_type=entry_type,
            entry_date=entry_date,
            entry_time=entry_time,
            remark=remark,
            payment_mode=payment_mode,
            category=category,
            attachments=[*kept, *linked],
        ))
    except EntryValidationError as e:
        st.error(components.entry_flow.validation_summary(e.result))
        return

    if result.warnings:
        st.warning(components.entry_flow.validation_summary(result))

    with st.spinner("Saving..."):
        try:
            run_async(components.entry_flow.save_entry(
                book_id,
                user_id,
                draft,
                new_files=[(f.name, f.getvalue()) for f in files or []],
                entry_id=existing.id if existing else None,
            ))
        except USER_FACING_ERRORS as e:
            st.error(f"Could not save entry: {e}")
            return

    go_to("book", editing_entry_id=None)


def get_supported_types() -> list[str]:
    return get_settings().app.supported_formats_list


def render_entry_detail_page(components: AppComponents, user_id: UUID):
    """Render one entry with its attachments."""
    book_id = st.session_state.get("current_book_id")
    entry_id = st.session_state.get("current_entry_id")
    try:
        ledger = run_async(components.book_flow.open_book(book_id, user_id))
        entry = run_async(components.entry_flow.get_entry(book_id, entry_id, user_id))
    except NotFoundError:
        st.warning("This entry no longer exists.")
        go_to("book")
        return
    except USER_FACING_ERRORS as e:
        st.error(str(e))
        return

    css = "cash-in" if entry.type == EntryType.CASH_IN else "cash-out"
    st.title(entry.type.label)
    st.markdown(f'<h2 class="{css}">{money(entry.amount)}</h2>', unsafe_allow_html=True)

    col1, col2 = st.columns(2)
    with col1:
        st.markdown(f"**Date:** {format_display_date(entry.entry_date)}")
        st.markdown(f"**Time:** {format_display_time(entry.entry_time)}")
        st.markdown(f"**Running balance:** {money(ledger.balances_by_entry().get(entry.id, 0))}")
    with col2:
        st.markdown(f"**Payment mode:** {entry.payment_mode}")
        st.markdown(f"**Category:** {entry.category}")
        st.markdown(f"**Added:** {entry.created_at.strftime('%d %B %Y, %H:%M')} UTC")
    if entry.remark:
        st.markdown(f"**Remark:** {entry.remark}")

    if entry.attachments:
        st.markdown("### 📎 Attachments")
        service = components.attachment_service
        for attachment in entry.attachments:
            if attachment.kind == AttachmentKind.UPLOADED and service is None:
                st.caption(f"Stored image {attachment.url} (attachment storage not configured)")
                continue
            url = service.resolve_url(attachment) if service else attachment.url
            st.image(url, width=400)
            st.markdown(f"[Open full size]({url})")

    st.markdown("---")
    col1, col2, col3 = st.columns(3)
    with col1:
        if st.button("← Back"):
            go_to("book")
    if can_edit_entries(ledger.access):
        with col2:
            if st.button("✏️ Edit"):
                go_to("entry_form", editing_entry_id=entry.id)
        with col3:
            if st.button("🗑️ Delete"):
                try:
                    run_async(components.entry_flow.delete_entry(book_id, entry.id, user_id))
                    go_to("book", current_entry_id=None)
                except USER_FACING_ERRORS as e:
                    st.error(f"Could not delete entry: {e}")


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Cloudinary (Attachments)", "cloudinary"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown(f"**Active storage:** {components.storage_backend}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file with your credentials. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
