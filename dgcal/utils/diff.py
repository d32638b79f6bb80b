import datetime

from ..models import TournamentDict


def calculate_stats(
    old_tournaments: list[TournamentDict],
    new_tournaments: list[TournamentDict],
    failed: list[int] | None = None,
) -> str:
    """Calculates statistics between two tournament states.

    Args:
        old_tournaments: Tournament dicts before the sync.
        new_tournaments: Tournament dicts after the sync.
        failed: Optional ids whose enrichment failed.

    Returns:
        A formatted commit message string summarizing the changes.
    """
    old_map = {t["id"]: t for t in old_tournaments}
    new_map = {t["id"]: t for t in new_tournaments}

    new_ids = set(new_map.keys()) - set(old_map.keys())
    common_ids = set(old_map.keys()) & set(new_map.keys())

    changed_count = 0
    cancelled_count = 0
    for tid in common_ids:
        if old_map[tid] != new_map[tid]:
            changed_count += 1
            if (
                new_map[tid]["status"] == "cancelled"
                and old_map[tid]["status"] != "cancelled"
            ):
                cancelled_count += 1

    today = datetime.date.today().isoformat()
    msg = f"Update tournaments: {today}\n"
    msg += f"New: {len(new_ids)}, Changed: {changed_count}, Cancelled: {cancelled_count}"

    if failed:
        msg += "\nFailed: " + ", ".join(str(tid) for tid in sorted(failed))

    return msg
