"""
Supervision Service — formation progress of members, seen by their managers.

    presidence      every pole, every member
    responsable     members of their own pole
    normal          no access
"""

import logging
from collections import defaultdict

from sqlalchemy import select

from memberdesk.core.exceptions import NotFoundError, PermissionDeniedError
from memberdesk.models import db
from memberdesk.models.formation import Enrollment
from memberdesk.models.member import POLE_LABELS, POLES, Member
from memberdesk.services import formation_service
from memberdesk.storage import signed_url

logger = logging.getLogger(__name__)

SUPERVISION_DENIED_MESSAGE = "Supervision réservée à la présidence et aux responsables de pôle."


def _require_supervisor(viewer: Member, pole: str | None = None) -> None:
    if pole is None:
        allowed = viewer.role in ("presidence", "responsable")
    else:
        allowed = viewer.can_manage_pole(pole)
    if not allowed:
        raise PermissionDeniedError(SUPERVISION_DENIED_MESSAGE)


def _enrollments_by_member(member_ids) -> dict[int, list[Enrollment]]:
    grouped = defaultdict(list)
    if not member_ids:
        return grouped
    rows = db.session.execute(
        select(Enrollment).where(Enrollment.member_id.in_(member_ids)).order_by(Enrollment.id)
    ).scalars()
    for enrollment in rows:
        grouped[enrollment.member_id].append(enrollment)
    return grouped


def enrollment_summary(enrollment: Enrollment) -> dict:
    formation = enrollment.formation
    summary = formation_service.progress_summary(formation, enrollment)
    attempt = enrollment.quiz_attempt
    return {
        "enrollment_id": enrollment.id,
        "formation_id": formation.id,
        "title": formation.title,
        "pole": formation.pole,
        **summary.to_dict(),
        "quiz": {"score": attempt.score, "total": attempt.total} if attempt else None,
    }


def _member_row(member: Member, enrollments: list[Enrollment]) -> dict:
    formations = [enrollment_summary(e) for e in enrollments]
    row = member.to_dict()
    row["formations"] = formations
    row["completed_formations"] = sum(1 for f in formations if f["formation_complete"])
    row["average_progress"] = (
        round(sum(f["percent"] for f in formations) / len(formations)) if formations else 0
    )
    return row


def _members(pole: str | None = None) -> list[Member]:
    stmt = select(Member).where(Member.is_active.is_(True)).order_by(Member.full_name, Member.id)
    if pole is not None:
        stmt = stmt.where(Member.pole == pole)
    return db.session.execute(stmt).scalars().all()


def pole_view(viewer: Member, pole: str) -> dict:
    """Members of one pole with their per-formation progress and quiz score."""
    if pole not in POLES:
        raise NotFoundError(resource="Pole", resource_id=pole)
    _require_supervisor(viewer, pole)
    members = _members(pole)
    enrollments = _enrollments_by_member([m.id for m in members])
    return {
        "pole": pole,
        "pole_label": POLE_LABELS[pole],
        "members": [_member_row(m, enrollments.get(m.id, [])) for m in members],
    }


def global_view(viewer: Member) -> dict:
    """Every visible member plus per-pole aggregates.

    A responsable only sees their own pole.
    """
    _require_supervisor(viewer)
    pole_filter = None if viewer.role == "presidence" else viewer.pole
    members = _members(pole_filter)
    enrollments = _enrollments_by_member([m.id for m in members])
    rows = [_member_row(m, enrollments.get(m.id, [])) for m in members]

    per_pole = {}
    for row in rows:
        agg = per_pole.setdefault(row["pole"], {
            "pole": row["pole"],
            "pole_label": POLE_LABELS.get(row["pole"], row["pole"]),
            "member_count": 0,
            "enrollment_count": 0,
            "completed_count": 0,
            "_percent_sum": 0,
        })
        agg["member_count"] += 1
        agg["enrollment_count"] += len(row["formations"])
        agg["completed_count"] += row["completed_formations"]
        agg["_percent_sum"] += sum(f["percent"] for f in row["formations"])

    poles = []
    for pole in sorted(per_pole):
        agg = per_pole[pole]
        percent_sum = agg.pop("_percent_sum")
        agg["average_progress"] = (
            round(percent_sum / agg["enrollment_count"]) if agg["enrollment_count"] else 0
        )
        poles.append(agg)
    return {"members": rows, "poles": poles}


def member_detail(viewer: Member, member_id: int) -> dict:
    """Step-level detail for one member: states, text answers, files, quiz review."""
    member = db.session.get(Member, member_id)
    if member is None:
        raise NotFoundError(resource="Member", resource_id=member_id)
    _require_supervisor(viewer, member.pole)

    details = []
    for enrollment in _enrollments_by_member([member.id]).get(member.id, []):
        formation = enrollment.formation
        completed_ids = {p.step_id for p in enrollment.progress if p.completed}
        states = formation_service.compute_step_states(formation.steps, completed_ids)
        answers = {p.step_id: p.text_answer for p in enrollment.progress}
        files = defaultdict(list)
        for sub in enrollment.submissions:
            files[sub.step_id].append({
                "id": sub.id,
                "file_name": sub.file_name,
                "url": signed_url(sub.storage_path, sub.file_name),
            })
        entry = enrollment_summary(enrollment)
        entry["steps"] = [
            {
                "id": s.id,
                "title": s.title,
                "order_index": s.order_index,
                "state": states[s.id].value,
                "text_answer": answers.get(s.id),
                "submissions": files.get(s.id, []),
            }
            for s in formation.steps
        ]
        attempt = enrollment.quiz_attempt
        entry["quiz_attempt"] = attempt.to_dict(include_answers=True) if attempt else None
        details.append(entry)

    return {"member": member.to_dict(), "enrollments": details}
