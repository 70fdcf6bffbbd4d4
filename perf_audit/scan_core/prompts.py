"""Interactive confirmation used by the audit front end."""
from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, Optional, Union

LOGGER = logging.getLogger("perf-audit")

# True/False for yes/no, or the edited value the user typed instead
Response = Union[bool, str]
Confirmer = Callable[[str, Optional[str]], Response]

YES_ANSWERS = {"", "y", "yes"}
NO_ANSWERS = {"n", "no"}


def console_confirm(
    question: str,
    suggestion: Optional[str] = None,
    input_func: Callable[[str], str] = input,
) -> Response:
    """Ask on the terminal. With a suggestion, any other answer is an edit."""
    hint = "[Y/n/or type a replacement]" if suggestion is not None else "[Y/n]"
    prompt = f"{question} {hint} "
    if suggestion is not None:
        prompt = f"{question} ({suggestion}) {hint} "
    for _ in range(3):
        try:
            answer = input_func(prompt).strip()
        except EOFError:
            LOGGER.debug("No input available for %r; treating as 'no'.", question)
            return False
        lowered = answer.lower()
        if lowered in YES_ANSWERS:
            return True
        if lowered in NO_ANSWERS:
            return False
        if suggestion is not None:
            return answer
        print("Please answer 'y' or 'n'.")
    return False


def auto_confirm(question: str, suggestion: Optional[str] = None) -> Response:
    LOGGER.info("%s -> yes (non-interactive)", question)
    return True


def scripted_confirm(responses: Iterable[Response]) -> Confirmer:
    """Replay canned responses in order; answers 'no' once they run out."""
    remaining: Iterator[Response] = iter(responses)

    def confirm(question: str, suggestion: Optional[str] = None) -> Response:
        response = next(remaining, False)
        LOGGER.debug("%s -> %r", question, response)
        return response

    return confirm
