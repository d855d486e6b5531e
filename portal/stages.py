"""Stage definitions for the ADM certification-upload portal.

Each builder returns an immutable :class:`StageDefinition`; workflows are
plain lists of them. Targets and timeouts come from :class:`RunConfig`,
credentials and the provider come from the run inputs (``username``,
``password``, ``provider``).
"""

from __future__ import annotations

from typing import List, Optional

from workflow.dsl import (
    ClickAction,
    DispatchChangeAction,
    ElementCountProbe,
    FillAction,
    HideAction,
    NavigateAction,
    SelectOptionAction,
    SequenceAction,
    StageDefinition,
    UrlPatternProbe,
    ValueChangeProbe,
    VisibilityProbe,
)

from .config import RunConfig

USER_INPUT = "#userName1"
PASS_INPUT = "#userPassword1"
SUBMIT_BUTTON = "button.adm-btn-primary"
LOGIN_ERROR = ".alert, .alert-danger, .alert-warning, .feedbackPanelERROR, .text-danger"
LOGIN_SEGMENT = "/Login"

DASHBOARD_MARKERS = [
    'text="Asset Publisher"',
    r"text=/ONLINE\s+SERVICES/i",
]

COOKIE_BAR = "#cookiebar-adm"
COOKIE_CLOSE_LINKS = [
    f'{COOKIE_BAR} a[aria-label*="Chiudi e rifiuta tutto"]',
    f'{COOKIE_BAR} a:has-text("Close and reject cookies")',
    f'{COOKIE_BAR} a[href*="deleteCookies"]',
]

ODV_HOST_PATTERN = r"^https://odv\.adm\.gov\.it/"
UPLOAD_PATH_PATTERN = r"(?i)/ODV_GAD/pages/acquisizioneCertificazione\.xhtml(\b|$)"
UPLOAD_HEADING = 'h1:has-text("Acquisizione Certificazione")'
UPLOAD_FORM = 'form[action*="acquisizioneCertificazione"]'
UPLOAD_BUTTONS = 'button:has-text("Carica"), button:has-text("Upload")'

PROVIDER_SELECT = r"#formAcqController\:elencoConc"
VIEW_STATE = "input[name='javax.faces.ViewState']"
FILE_INPUT = "input[type='file']"


def _login_guard(config: RunConfig) -> UrlPatternProbe:
    return UrlPatternProbe(
        id="bounced-to-login",
        pattern=LOGIN_SEGMENT,
        mode="contains",
        timeout_ms=config.probe_timeout_ms,
        poll_interval_ms=config.poll_interval_ms,
    )


def open_login_stage(config: RunConfig) -> StageDefinition:
    """Load the login form; the checkpoint captures the page before anything is typed."""

    return StageDefinition(
        name="open-login",
        action=NavigateAction(url=config.login_url, timeout_ms=config.navigation_timeout_ms),
        probes=[
            VisibilityProbe(
                id="user-input-shown",
                selector=USER_INPUT,
                timeout_ms=config.probe_timeout_ms,
                poll_interval_ms=config.poll_interval_ms,
            ),
            VisibilityProbe(
                id="password-input-shown",
                selector=PASS_INPUT,
                timeout_ms=config.probe_timeout_ms,
                poll_interval_ms=config.poll_interval_ms,
            ),
        ],
        checkpoint="00_login_page",
    )


def login_stage(config: RunConfig) -> StageDefinition:
    """Submit credentials; the error banner beats any URL-based success signal.

    The banner only counts while the browser is still on the login page, so an
    informational alert on the dashboard does not reject a valid login.
    """

    probes = [
        UrlPatternProbe(
            id="left-login-page",
            pattern=LOGIN_SEGMENT,
            mode="excludes",
            timeout_ms=config.probe_timeout_ms,
            poll_interval_ms=config.poll_interval_ms,
        )
    ]
    probes += [
        VisibilityProbe(selector=marker, timeout_ms=config.probe_timeout_ms, poll_interval_ms=config.poll_interval_ms)
        for marker in DASHBOARD_MARKERS
    ]
    return StageDefinition(
        name="login",
        action=SequenceAction(
            steps=[
                FillAction(selector=USER_INPUT, value_from="username"),
                FillAction(selector=PASS_INPUT, value_from="password"),
                ClickAction(selectors=[SUBMIT_BUTTON]),
            ]
        ),
        probes=probes,
        guards=[
            VisibilityProbe(
                id="login-error",
                selector=LOGIN_ERROR,
                url_contains=LOGIN_SEGMENT,
                timeout_ms=config.probe_timeout_ms,
                poll_interval_ms=config.poll_interval_ms,
            )
        ],
        checkpoint="01_after_submit",
    )


def cookie_banner_stage(config: RunConfig) -> StageDefinition:
    """Close the consent bar if it shows up; force-hide it if it will not go.

    The close link is best effort: when its markup changes the stage still
    waits for the bar to go and then falls back to hiding it.
    """

    return StageDefinition(
        name="dismiss-cookies",
        precondition=VisibilityProbe(id="cookie-bar-shown", selector=COOKIE_BAR, timeout_ms=3_000),
        action=ClickAction(selectors=COOKIE_CLOSE_LINKS, timeout_ms=4_000, best_effort=True),
        probes=[
            VisibilityProbe(
                id="cookie-bar-gone",
                selector=COOKIE_BAR,
                state="hidden",
                timeout_ms=min(7_000, config.probe_timeout_ms),
                poll_interval_ms=config.poll_interval_ms,
            )
        ],
        fallback=HideAction(selector=COOKIE_BAR),
        checkpoint="02_after_cookies",
    )


def sso_stage(config: RunConfig) -> StageDefinition:
    """Jump through the SSO bridge into the ODV area."""

    return StageDefinition(
        name="sso-hop",
        action=NavigateAction(url=config.sso_url, timeout_ms=config.navigation_timeout_ms),
        probes=[
            UrlPatternProbe(
                id="on-odv-host",
                pattern=ODV_HOST_PATTERN,
                timeout_ms=config.probe_timeout_ms,
                poll_interval_ms=config.poll_interval_ms,
            ),
        ],
        guards=[_login_guard(config)],
        checkpoint="03_after_sso",
    )


def upload_page_stage(config: RunConfig) -> StageDefinition:
    return StageDefinition(
        name="upload-page",
        action=NavigateAction(url=config.upload_url, timeout_ms=config.navigation_timeout_ms),
        probes=[
            UrlPatternProbe(
                id="upload-url",
                pattern=UPLOAD_PATH_PATTERN,
                timeout_ms=config.probe_timeout_ms,
                poll_interval_ms=config.poll_interval_ms,
            ),
            VisibilityProbe(selector=UPLOAD_HEADING, timeout_ms=config.probe_timeout_ms),
            ElementCountProbe(selector=UPLOAD_FORM, timeout_ms=config.probe_timeout_ms),
            VisibilityProbe(selector=UPLOAD_BUTTONS, timeout_ms=config.probe_timeout_ms),
        ],
        guards=[_login_guard(config)],
        checkpoint="04_upload_page",
    )


def provider_stage(config: RunConfig) -> StageDefinition:
    """Pick the concessionaire; the JSF onchange posts back and re-renders the form."""

    return StageDefinition(
        name="select-provider",
        action=SelectOptionAction(selector=PROVIDER_SELECT, option_from="provider", timeout_ms=8_000),
        probes=[
            ValueChangeProbe(id="view-state-changed", selector=VIEW_STATE, timeout_ms=config.probe_timeout_ms),
            ElementCountProbe(id="file-input-shown", selector=FILE_INPUT, timeout_ms=config.probe_timeout_ms),
        ],
        fallback=DispatchChangeAction(selector=PROVIDER_SELECT),
        checkpoint="05_after_provider_select",
    )


def page_probe_stage(config: RunConfig, url: str, wait_for: Optional[str] = None) -> StageDefinition:
    """Open an arbitrary page and wait for ``wait_for`` (or just a rendered body)."""

    return StageDefinition(
        name="probe",
        action=NavigateAction(url=url, timeout_ms=config.navigation_timeout_ms),
        probes=[VisibilityProbe(selector=wait_for or "body", timeout_ms=config.navigation_timeout_ms)],
        checkpoint="00_probe",
    )


def login_workflow(config: RunConfig) -> List[StageDefinition]:
    return [open_login_stage(config), login_stage(config)]


def upload_navigation_workflow(config: RunConfig) -> List[StageDefinition]:
    return [*login_workflow(config), cookie_banner_stage(config), sso_stage(config), upload_page_stage(config)]


def provider_selection_workflow(config: RunConfig) -> List[StageDefinition]:
    return [*upload_navigation_workflow(config), provider_stage(config)]


def page_probe_workflow(config: RunConfig, url: str, wait_for: Optional[str] = None) -> List[StageDefinition]:
    return [page_probe_stage(config, url, wait_for)]
