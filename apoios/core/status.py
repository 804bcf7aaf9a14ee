"""
Program status inference from free text.

Status is derived, never stored as ground truth: the first rule in
STATUS_RULES that matches the normalized text decides (OPEN, then CLOSED,
then PLANNED), otherwise UNKNOWN.
"""

from typing import Optional

from apoios.core.domain_models import ProgramStatus
from apoios.core.keywords import STATUS_RULES
from apoios.core.utils import normalize_text


def infer_status(text: Optional[str], rules=STATUS_RULES) -> ProgramStatus:
    """
    Classify page text into a program status.

    Args:
        text: Raw page or listing text
        rules: Ordered (status, compiled pattern) pairs

    Returns:
        ProgramStatus; UNKNOWN when no rule matches

    Examples:
        >>> infer_status("Candidaturas abertas até 30 de junho")
        <ProgramStatus.OPEN: 'OPEN'>
        >>> infer_status("Aviso encerrado")
        <ProgramStatus.CLOSED: 'CLOSED'>
    """
    normalized = normalize_text(text)
    if not normalized:
        return ProgramStatus.UNKNOWN

    for status, pattern in rules:
        if pattern.search(normalized):
            return status
    return ProgramStatus.UNKNOWN
