"""
captcha.py — Image challenge on job detail pages.

The challenge (a "Sicherheitsabfrage" image plus a text input) gates the
employer's contact block. When present, the image is rasterised and sent to
2Captcha; the answer is typed in and the form submitted. The outcome is
reported as a state, not an exception, unless the solving service itself fails.
"""

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from twocaptcha import TwoCaptcha

from config import CaptchaSettings
from exceptions import CaptchaSolveError
from monitoring import get_logger
from waits import Deadline, poll_until

logger = get_logger("scrapers.captcha")

CHALLENGE_IMAGE_SELECTOR = 'img[alt*="Sicherheitsabfrage"], img[src*="captcha"]'

# Text that is only on the page while the challenge is shown
CHALLENGE_PROMPTS = ["Sicherheitsabfrage", "dargestellten Zeichen"]

ANSWER_INPUT_SELECTORS = [
    "#kontaktdaten-captcha-input",
    "form[id*='captcha'] input[type='text']",
    "input[type='text']",
]

# Tried in order: submit role, visible submit label, submit-like id
SUBMIT_SELECTORS = [
    "button[type='submit'], input[type='submit']",
    "button:has-text('Absenden')",
    "button[id*='submit']",
]

# Some page variants need one more click before the contact block renders
SECONDARY_ACTION_SELECTORS = [
    "button:has-text('Kontakt')",
    "a:has-text('Kontakt')",
    "button:has-text('PDF')",
    "a[href*='pdf']",
    "button:has-text('anzeigen')",
    "a:has-text('anzeigen')",
    "button:has-text('laden')",
    "a:has-text('laden')",
]


class ChallengeState(str, Enum):
    CHECKING = "checking"
    NO_CHALLENGE = "no-challenge"
    SOLVING = "solving"
    SUBMITTING = "submitting"
    AWAITING_UPDATE = "awaiting-update"
    CLEARED = "cleared"
    STUCK = "stuck"


@dataclass
class ChallengeOutcome:
    state: ChallengeState
    answer: Optional[str] = None
    reason: Optional[str] = None
    transitions: list[ChallengeState] = field(default_factory=list)

    @property
    def stuck(self) -> bool:
        return self.state == ChallengeState.STUCK


def prompt_visible(page_text: str) -> bool:
    return any(prompt in page_text for prompt in CHALLENGE_PROMPTS)


class ImageSolvingService:
    """2Captcha image-to-text solving, bounded by a timeout."""

    def __init__(self, settings: CaptchaSettings, solver: Optional[TwoCaptcha] = None):
        self.settings = settings
        self._solver = solver

    def _client(self) -> TwoCaptcha:
        if self._solver is None:
            if not self.settings.api_key:
                raise CaptchaSolveError("TWOCAPTCHA_API_KEY is not configured")
            self._solver = TwoCaptcha(
                self.settings.api_key,
                defaultTimeout=int(self.settings.solve_timeout_seconds),
                pollingInterval=max(1, int(self.settings.solve_polling_seconds)),
            )
        return self._solver

    def solve(self, image_b64: str, timeout: Optional[float] = None) -> str:
        if timeout is None:
            timeout = self.settings.solve_timeout_seconds
        if timeout <= 0:
            raise CaptchaSolveError("No time left to solve the challenge")
        solver = self._client()
        try:
            result = solver.normal(image_b64, timeout=int(max(1, timeout)))
        except Exception as e:
            raise CaptchaSolveError(f"Solving service failed: {type(e).__name__}: {e}") from e

        answer = (result or {}).get("code", "").strip()
        if not answer:
            raise CaptchaSolveError("Solving service returned an empty answer")
        return answer


class CaptchaChallengeSolver:
    """
    checking -> no-challenge
             -> solving -> submitting -> awaiting-update -> cleared | stuck
    """

    def __init__(self, session, service: ImageSolvingService, settings: CaptchaSettings,
                 deadline: Optional[Deadline] = None):
        self.session = session
        self.service = service
        self.settings = settings
        self.deadline = deadline or Deadline.unbounded()
        self.transitions: list[ChallengeState] = []

    def _enter(self, state: ChallengeState):
        self.transitions.append(state)
        logger.info(f"Challenge state: {state.value}")

    def _finish(self, state: ChallengeState, answer: Optional[str] = None, reason: Optional[str] = None):
        self._enter(state)
        if reason:
            logger.warning(f"Challenge {state.value}: {reason}")
        return ChallengeOutcome(state=state, answer=answer, reason=reason, transitions=list(self.transitions))

    def _prompt_gone(self) -> bool:
        return not prompt_visible(self.session.text())

    def _wait_for_prompt_to_clear(self) -> bool:
        return poll_until(
            self._prompt_gone,
            timeout=self.settings.disappear_timeout_seconds,
            interval=self.settings.disappear_poll_seconds,
            sleep=self.session.pause,
            deadline=self.deadline,
        )

    def run(self) -> ChallengeOutcome:
        self.transitions = []
        self._enter(ChallengeState.CHECKING)
        if not self.session.has_element(CHALLENGE_IMAGE_SELECTOR):
            return self._finish(ChallengeState.NO_CHALLENGE)

        self._enter(ChallengeState.SOLVING)
        self.deadline.check("challenge solving")
        image = self.session.element_png(CHALLENGE_IMAGE_SELECTOR)
        image_b64 = base64.b64encode(image).decode("ascii")
        answer = self.service.solve(image_b64, timeout=self.deadline.clamp(self.settings.solve_timeout_seconds))
        logger.info(f"Challenge answer received ({len(answer)} chars)")

        self._enter(ChallengeState.SUBMITTING)
        input_selector = self.session.find_first(ANSWER_INPUT_SELECTORS)
        if input_selector is None:
            return self._finish(ChallengeState.STUCK, answer, "answer input not found")
        self.session.fill(input_selector, answer)

        submit_selector = self.session.find_first(SUBMIT_SELECTORS)
        if submit_selector is None:
            return self._finish(ChallengeState.STUCK, answer, "submit control not found")
        logger.info(f"Submitting via {submit_selector}")
        self.session.click(submit_selector)

        self._enter(ChallengeState.AWAITING_UPDATE)
        cleared = self._wait_for_prompt_to_clear()
        if not cleared:
            action = self.session.find_first(SECONDARY_ACTION_SELECTORS)
            if action is None:
                logger.info("Challenge prompt still visible and no follow-up control found")
            else:
                logger.info(f"Challenge prompt still visible, clicking {action}")
                self.session.click(action)
                cleared = self._wait_for_prompt_to_clear()

        self.session.pause(self.deadline.clamp(self.settings.settle_seconds))

        if not cleared and not self._prompt_gone():
            return self._finish(ChallengeState.STUCK, answer, "challenge prompt did not disappear")
        return self._finish(ChallengeState.CLEARED, answer)
