"""
Source capability probe.

Decides whether a table looks like the response table of a form, i.e. a source
whose rows arrive one at a time from submissions. The check is a heuristic and
deliberately loose: a table passes if ANY signal is present.

  (a) the table reports an originating form (metadata "form_url")
  (b) a form-submit trigger is already registered for the hosting file
  (c) the header row contains both "Timestamp" and "Email Address"

Known imprecision: a hand-made table with those two headers passes; a form
table whose email collection is off fails unless (a) or (b) holds.
"""
import logging
from typing import Any, Optional, Sequence

from storage.tables import TableBackend

logger = logging.getLogger(__name__)

FORM_URL_METADATA_KEY = "form_url"
FORM_HEADER_MARKERS = ("Timestamp", "Email Address")


def is_form_compatible(
    header_values: Sequence[Any],
    form_url: Optional[str] = None,
    has_submit_trigger: bool = False,
) -> bool:
    """
    Best-effort form compatibility check.

    Args:
        header_values: Cell values of the header row
        form_url: Originating form, if the table reports one
        has_submit_trigger: Whether a form-submit trigger targets the file

    Returns:
        True if any compatibility signal is present
    """
    if form_url:
        return True
    if has_submit_trigger:
        return True
    return all(marker in header_values for marker in FORM_HEADER_MARKERS)


def probe_source(
    table_backend: TableBackend,
    table_id: str,
    has_submit_trigger: bool = False,
) -> bool:
    """Run is_form_compatible against a table of a backend."""
    header = table_backend.read_header(table_id)
    form_url = table_backend.get_table_metadata(table_id).get(FORM_URL_METADATA_KEY)
    compatible = is_form_compatible(header.values, form_url, has_submit_trigger)
    logger.debug(
        f"Probe {table_id}: form_url={bool(form_url)} trigger={has_submit_trigger} "
        f"header={header.values} -> {compatible}"
    )
    return compatible
