"""Tests for the Streamlit front end, driven through streamlit's AppTest."""

from uuid import uuid4

import pytest
from streamlit.testing.v1 import AppTest

from cashbook.models.user import AuthSession


@pytest.fixture
def app():
    at = AppTest.from_file("../app/main.py", default_timeout=30)
    at.session_state["auth_session"] = AuthSession(user_id=uuid4(), email="asha@example.com")
    return at


class TestFlashMessages:
    """A message set before a rerun is shown on the next run only."""

    def test_message_survives_rerun_once(self, app):
        app.session_state["flash"] = "Imported 2 entries"

        app.run()
        assert not app.exception
        assert [s.value for s in app.success] == ["Imported 2 entries"]

        app.run()
        assert "Imported 2 entries" not in [s.value for s in app.success]

    def test_signed_out_user_sees_auth_page(self):
        at = AppTest.from_file("../app/main.py", default_timeout=30)
        at.run()
        assert not at.exception
        assert at.title[0].value == "📒 Shared Cashbook"
