"""
navigation.py
Role-gated navigation: which screen the shell renders and which pages a role may open.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum


class RenderState(str, Enum):
    LOGIN_GATE = "login_gate"
    PROFILE_SETUP = "profile_setup"
    SUBSCRIBER_CLAIM = "subscriber_claim"
    ADMIN_SHELL = "admin_shell"
    SUBSCRIBER_SHELL = "subscriber_shell"
    ACCESS_DENIED = "access_denied"


class SetupFlow(str, Enum):
    PROFILE_FORM = "profile_form"
    CLAIM = "claim"


class Page(str, Enum):
    OPERATIONS = "operations"
    DASHBOARD = "dashboard"
    SUBSCRIBERS = "subscribers"
    BILLING = "billing"
    MY_DUES = "my_dues"


PAGE_LABELS = {
    Page.OPERATIONS: "Operations",
    Page.DASHBOARD: "Dashboard",
    Page.SUBSCRIBERS: "Subscribers",
    Page.BILLING: "Monthly Billing",
    Page.MY_DUES: "My Dues",
}

ADMIN_PAGES = [Page.OPERATIONS, Page.DASHBOARD, Page.SUBSCRIBERS, Page.BILLING, Page.MY_DUES]
SUBSCRIBER_PAGES = [Page.MY_DUES]


@dataclass(frozen=True)
class ShellState:
    page: Page | None = None
    setup_flow: SetupFlow = SetupFlow.PROFILE_FORM

    def navigate(self, page: Page) -> "ShellState":
        return replace(self, page=page)

    def start_claim(self) -> "ShellState":
        return replace(self, setup_flow=SetupFlow.CLAIM)

    def back_to_profile_form(self) -> "ShellState":
        return replace(self, setup_flow=SetupFlow.PROFILE_FORM)


def pages_for(is_admin: bool) -> list[Page]:
    return list(ADMIN_PAGES if is_admin else SUBSCRIBER_PAGES)


def default_page(is_admin: bool) -> Page:
    return Page.OPERATIONS if is_admin else Page.MY_DUES


def resolve_render_state(
    is_authenticated: bool,
    has_profile: bool,
    is_admin: bool,
    setup_flow: SetupFlow = SetupFlow.PROFILE_FORM,
) -> RenderState:
    """
    Top-level screen for the current session:
    no identity -> login gate; no profile -> profile form or claim flow;
    otherwise the admin or subscriber shell.
    """
    if not is_authenticated:
        return RenderState.LOGIN_GATE
    if not has_profile:
        if setup_flow == SetupFlow.CLAIM:
            return RenderState.SUBSCRIBER_CLAIM
        return RenderState.PROFILE_SETUP
    return RenderState.ADMIN_SHELL if is_admin else RenderState.SUBSCRIBER_SHELL


def resolve_page(page: Page | None, is_admin: bool) -> Page | RenderState:
    """Page to render inside a resolved shell, or ACCESS_DENIED when the role may not open it."""
    if page is None:
        return default_page(is_admin)
    if page in pages_for(is_admin):
        return page
    return RenderState.ACCESS_DENIED
