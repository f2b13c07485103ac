from typing import List

import logging

from . import RECEIVED, SONGS_CONFIRMED, InputError, StatusStore  # type: ignore circular import


logger = logging.getLogger("relay.jobs.scanner")


def is_ready(store: StatusStore, job_id: str, status: str) -> bool:
    """A job is ready once received (unless it waits for song confirmation) or once its songs are confirmed."""
    if status == SONGS_CONFIRMED:
        return True
    if status != RECEIVED:
        return False
    try:
        metadata = store.workspace(job_id).load_metadata()
    except InputError:
        # let the orchestrator report the broken input
        return True
    return not metadata.confirm_songs


def enqueue_pending(store: StatusStore, runner) -> List[str]:
    """Submit every ready job in the received directory to the runner.

    Returns the job ids that were newly submitted.
    """
    submitted: List[str] = []
    for record in store.iter_records():
        try:
            if not is_ready(store, record.job_id, record.status):
                continue
            started = runner.submit(record.job_id)
        except Exception:
            # one broken job must not stop the scan
            logger.exception(f"Could not enqueue {record.job_id}")
            continue
        if started:
            logger.info(f"Enqueued {record.job_id} ({record.status})")
            submitted.append(record.job_id)
    return submitted
