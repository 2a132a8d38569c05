"""
Formation Service — gated onboarding courses.

Business context:
    A formation is an ordered list of steps owned by a pole. A member
    enrolls once, then works through the steps in order:

        step 0            unlocked as soon as the member is enrolled
        step N (N > 0)    locked until step N-1 is completed
        completed         terminal; re-completing is a no-op

    Step states are derived on every read from the StepProgress rows and
    never stored.

    Completing a step is gated by a readiness predicate:
        requires_file → at least one StepSubmission for (enrollment, step)
        requires_text → a non-empty trimmed text answer

Permissions:
    Managing a formation (create / edit / delete / quiz authoring) is
    reserved to the presidence and to the responsable of the formation's
    pole. Members who are neither enrolled nor managers only see step
    titles.

Transactions:
    Authoring (formation + step reconciliation + documents) commits once.
    Files uploaded before a failed commit are removed best-effort; files of
    removed documents are deleted only after the commit succeeded.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from memberdesk.core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from memberdesk.models import db
from memberdesk.models.formation import (
    Enrollment,
    Formation,
    FormationStep,
    StepDocument,
    StepProgress,
    StepSubmission,
)
from memberdesk.models.member import POLES
from memberdesk.storage import document_key, get_storage, signed_url, submission_key
from memberdesk.storage.exceptions import StorageError
from memberdesk.utils.helpers import commit_or_rollback

logger = logging.getLogger(__name__)

FORMATION_TITLE_REQUIRED = "Le titre de la formation est requis."
STEP_TITLE_REQUIRED = "Chaque étape doit avoir un titre."
STEP_LOCKED_MESSAGE = "Cette étape est verrouillée : termine d'abord l'étape précédente."
STEP_NEEDS_FILE_MESSAGE = "Dépose au moins un fichier avant de valider cette étape."
STEP_NEEDS_TEXT_MESSAGE = "Rédige ta réponse avant de valider cette étape."
NOT_ENROLLED_MESSAGE = "Tu n'es pas inscrit à cette formation."
MANAGE_DENIED_MESSAGE = "Seuls la présidence et le responsable du pôle peuvent gérer ses formations."

_YOUTUBE_RE = re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/)([a-zA-Z0-9_-]+)")
_VIMEO_RE = re.compile(r"vimeo\.com/(\d+)")


class StepState(str, Enum):
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ProgressSummary:
    completed_count: int
    total_steps: int

    @property
    def formation_complete(self) -> bool:
        # A formation without steps counts as complete
        return self.completed_count >= self.total_steps

    @property
    def percent(self) -> int:
        if self.total_steps == 0:
            return 100
        return round(100 * self.completed_count / self.total_steps)

    def to_dict(self) -> dict:
        return {
            "completed_count": self.completed_count,
            "total_steps": self.total_steps,
            "formation_complete": self.formation_complete,
            "percent": self.percent,
        }


def video_embed_url(url: str | None) -> str | None:
    """YouTube / Vimeo page URL → embeddable player URL; None otherwise."""
    if not url:
        return None
    yt = _YOUTUBE_RE.search(url)
    if yt:
        return f"https://www.youtube.com/embed/{yt.group(1)}"
    vimeo = _VIMEO_RE.search(url)
    if vimeo:
        return f"https://player.vimeo.com/video/{vimeo.group(1)}"
    return None


# ── Lookups ───────────────────────────────────────────────────────────────────


def get_formation(formation_id: int) -> Formation:
    formation = db.session.get(Formation, formation_id)
    if formation is None:
        raise NotFoundError(resource="Formation", resource_id=formation_id)
    return formation


def get_step(formation: Formation, step_id: int) -> FormationStep:
    step = db.session.get(FormationStep, step_id)
    if step is None or step.formation_id != formation.id:
        raise NotFoundError(resource="FormationStep", resource_id=step_id)
    return step


def find_enrollment(member_id: int, formation_id: int) -> Enrollment | None:
    return db.session.execute(
        select(Enrollment).where(
            Enrollment.member_id == member_id,
            Enrollment.formation_id == formation_id,
        )
    ).scalar_one_or_none()


def require_enrollment(member, formation: Formation) -> Enrollment:
    enrollment = find_enrollment(member.id, formation.id)
    if enrollment is None:
        raise ValidationError(NOT_ENROLLED_MESSAGE, code="not_enrolled")
    return enrollment


def can_manage(member, formation_or_pole) -> bool:
    pole = formation_or_pole.pole if isinstance(formation_or_pole, Formation) else formation_or_pole
    return member.can_manage_pole(pole)


def require_manager(member, formation_or_pole) -> None:
    if not can_manage(member, formation_or_pole):
        raise PermissionDeniedError(MANAGE_DENIED_MESSAGE)


# ── Derived state ─────────────────────────────────────────────────────────────


def _completed_step_ids(enrollment: Enrollment | None) -> set[int]:
    if enrollment is None:
        return set()
    return {p.step_id for p in enrollment.progress if p.completed}


def compute_step_states(steps: list[FormationStep], completed_ids: set[int]) -> dict[int, StepState]:
    """Derive the state of every step from the set of completed step ids.

    ``steps`` must be ordered by ``order_index``.
    """
    states = {}
    previous_completed = True
    for step in steps:
        if step.id in completed_ids:
            states[step.id] = StepState.COMPLETED
        elif previous_completed:
            states[step.id] = StepState.UNLOCKED
        else:
            states[step.id] = StepState.LOCKED
        previous_completed = step.id in completed_ids
    return states


def progress_summary(formation: Formation, enrollment: Enrollment | None) -> ProgressSummary:
    step_ids = {s.id for s in formation.steps}
    completed = _completed_step_ids(enrollment) & step_ids
    return ProgressSummary(completed_count=len(completed), total_steps=len(step_ids))


def is_formation_complete(formation: Formation, enrollment: Enrollment | None) -> bool:
    return enrollment is not None and progress_summary(formation, enrollment).formation_complete


# ── Read views ────────────────────────────────────────────────────────────────


def list_formations(pole: str, member) -> list[dict]:
    """Formations of a pole with the caller's enrollment status and progress."""
    if pole not in POLES:
        raise NotFoundError(resource="Pole", resource_id=pole)
    formations = db.session.execute(
        select(Formation).where(Formation.pole == pole).order_by(Formation.created_at, Formation.id)
    ).scalars().all()
    enrollments = {
        e.formation_id: e
        for e in db.session.execute(
            select(Enrollment).where(
                Enrollment.member_id == member.id,
                Enrollment.formation_id.in_([f.id for f in formations]),
            )
        ).scalars()
    } if formations else {}

    rows = []
    for f in formations:
        d = f.to_dict()
        enrollment = enrollments.get(f.id)
        d["enrolled"] = enrollment is not None
        d["progress"] = progress_summary(f, enrollment).to_dict() if enrollment else None
        rows.append(d)
    return rows


def formation_view(formation: Formation, member) -> dict:
    """Detail view. Non-enrolled non-managers only get step titles."""
    enrollment = find_enrollment(member.id, formation.id)
    manager = can_manage(member, formation)
    view = formation.to_dict()
    view["can_manage"] = manager
    view["enrolled"] = enrollment is not None

    if enrollment is None and not manager:
        view["steps"] = [{"id": s.id, "title": s.title, "order_index": s.order_index} for s in formation.steps]
        view["progress"] = None
        return view

    states = compute_step_states(formation.steps, _completed_step_ids(enrollment))
    progress_by_step = {p.step_id: p for p in enrollment.progress} if enrollment else {}
    submissions_by_step: dict[int, list] = {}
    if enrollment:
        for sub in enrollment.submissions:
            submissions_by_step.setdefault(sub.step_id, []).append(sub.to_dict())

    steps = []
    for s in formation.steps:
        d = s.to_dict()
        d["embed_url"] = video_embed_url(s.video_url)
        if enrollment:
            d["state"] = states[s.id].value
            row = progress_by_step.get(s.id)
            d["text_answer"] = row.text_answer if row else None
            d["submissions"] = submissions_by_step.get(s.id, [])
        steps.append(d)
    view["steps"] = steps
    view["progress"] = progress_summary(formation, enrollment).to_dict() if enrollment else None
    return view


def progress_view(formation: Formation, member) -> dict:
    enrollment = require_enrollment(member, formation)
    states = compute_step_states(formation.steps, _completed_step_ids(enrollment))
    summary = progress_summary(formation, enrollment)
    return {
        "enrollment_id": enrollment.id,
        "steps": [{"step_id": s.id, "state": states[s.id].value} for s in formation.steps],
        **summary.to_dict(),
    }


# ── Learner actions ───────────────────────────────────────────────────────────


def enroll(member, formation: Formation) -> Enrollment:
    """Enroll once per (member, formation)."""
    if find_enrollment(member.id, formation.id) is not None:
        raise ConflictError("Enrollment", "formation_id", formation.id,
                            message="Tu es déjà inscrit à cette formation.")
    enrollment = Enrollment(member_id=member.id, formation_id=formation.id)
    db.session.add(enrollment)
    try:
        commit_or_rollback()
    except IntegrityError as exc:
        raise ConflictError("Enrollment", "formation_id", formation.id,
                            message="Tu es déjà inscrit à cette formation.") from exc
    logger.info("Member enrolled", extra={"member_id": member.id, "formation_id": formation.id})
    return enrollment


def _submission_count(enrollment: Enrollment, step: FormationStep) -> int:
    return db.session.execute(
        select(func.count(StepSubmission.id)).where(
            StepSubmission.enrollment_id == enrollment.id,
            StepSubmission.step_id == step.id,
        )
    ).scalar_one()


def complete_step(member, formation: Formation, step: FormationStep,
                  text_answer: str | None = None) -> StepProgress:
    """Mark a step completed if it is unlocked and ready.

    Raises:
        ValidationError(code="step_locked"): previous step not completed.
        ValidationError(code="step_not_ready"): readiness predicate fails.
    """
    enrollment = require_enrollment(member, formation)
    existing = next((p for p in enrollment.progress if p.step_id == step.id), None)
    if existing is not None and existing.completed:
        return existing

    states = compute_step_states(formation.steps, _completed_step_ids(enrollment))
    if states.get(step.id) is StepState.LOCKED:
        raise ValidationError(STEP_LOCKED_MESSAGE, code="step_locked", details={"step_id": step.id})

    answer = text_answer if text_answer is not None else (existing.text_answer if existing else None)
    answer = answer.strip() if isinstance(answer, str) else None
    if step.requires_file and _submission_count(enrollment, step) == 0:
        raise ValidationError(STEP_NEEDS_FILE_MESSAGE, code="step_not_ready",
                              details={"step_id": step.id, "missing": "file"})
    if step.requires_text and not answer:
        raise ValidationError(STEP_NEEDS_TEXT_MESSAGE, code="step_not_ready",
                              details={"step_id": step.id, "missing": "text"})

    progress = existing or StepProgress(enrollment_id=enrollment.id, step_id=step.id)
    progress.completed = True
    progress.completed_at = datetime.now(timezone.utc)
    if step.requires_text:
        progress.text_answer = answer
    if existing is None:
        db.session.add(progress)
    try:
        commit_or_rollback()
    except IntegrityError as exc:
        raise ConflictError("StepProgress", "step_id", step.id) from exc
    logger.info("Step %s completed", step.id,
                extra={"member_id": member.id, "formation_id": formation.id})
    return progress


def submit_file(member, formation: Formation, step: FormationStep,
                file_name: str, content: bytes) -> StepSubmission:
    """Store one learner file for a step. Repeatable while the step is not locked."""
    enrollment = require_enrollment(member, formation)
    states = compute_step_states(formation.steps, _completed_step_ids(enrollment))
    if states.get(step.id) is StepState.LOCKED:
        raise ValidationError(STEP_LOCKED_MESSAGE, code="step_locked", details={"step_id": step.id})
    if not file_name:
        raise ValidationError("Fichier manquant.", details={"file": "required"})

    storage = get_storage()
    key = submission_key(enrollment.id, step.id, file_name)
    storage.upload(content, key)

    submission = StepSubmission(
        enrollment_id=enrollment.id, step_id=step.id,
        file_name=file_name, storage_path=key,
    )
    db.session.add(submission)
    try:
        commit_or_rollback()
    except Exception:
        _discard_files(storage, [key])
        raise
    return submission


def document_download_url(member, formation: Formation, document_id: int) -> dict:
    """Signed URL for a reference document (enrolled members and managers)."""
    document = db.session.get(StepDocument, document_id)
    if document is None or document.step.formation_id != formation.id:
        raise NotFoundError(resource="StepDocument", resource_id=document_id)
    if not can_manage(member, formation):
        require_enrollment(member, formation)
    return {"url": signed_url(document.storage_path, document.file_name), "file_name": document.file_name}


# ── Authoring ─────────────────────────────────────────────────────────────────


def _validate_formation_payload(data: dict) -> list[dict]:
    errors = {}
    title = (data.get("title") or "").strip() if isinstance(data.get("title"), str) else ""
    if not title:
        errors["title"] = FORMATION_TITLE_REQUIRED
        raise ValidationError(FORMATION_TITLE_REQUIRED, details=errors)
    steps = data.get("steps") or []
    if not isinstance(steps, list) or any(not isinstance(s, dict) for s in steps):
        raise ValidationError("Liste d'étapes invalide.", details={"steps": "invalid"})
    for index, step in enumerate(steps):
        if not isinstance(step.get("title"), str) or not step["title"].strip():
            raise ValidationError(STEP_TITLE_REQUIRED, details={"steps": {str(index): "title required"}})
        step_id = step.get("id")
        if step_id is not None and (not isinstance(step_id, int) or isinstance(step_id, bool)):
            raise ValidationError("Liste d'étapes invalide.", details={"steps": {str(index): "invalid id"}})
    return steps


def _apply_step_fields(step: FormationStep, data: dict) -> None:
    step.title = data["title"].strip()
    step.description = (data.get("description") or "").strip() or None
    step.video_url = (data.get("video_url") or "").strip() or None
    step.requires_file = bool(data.get("requires_file", False))
    step.requires_text = bool(data.get("requires_text", False))


def _upload_documents(storage, step: FormationStep, uploads, member_id, new_keys: list[str]) -> None:
    for file_name, content in uploads or []:
        key = document_key(step.id, file_name)
        storage.upload(content, key)
        new_keys.append(key)
        db.session.add(StepDocument(step_id=step.id, file_name=file_name,
                                    storage_path=key, uploaded_by=member_id))


def _discard_files(storage, keys) -> None:
    for key in keys:
        try:
            storage.delete(key)
        except StorageError as exc:
            logger.warning("Could not delete stored file %s: %s", key, exc)


def create_formation(member, pole: str, data: dict, documents: dict | None = None) -> Formation:
    """Create a formation with its steps.

    Args:
        documents: {step position: [(file_name, bytes), ...]} reference files.
    """
    if pole not in POLES:
        raise ValidationError("Pôle inconnu.", details={"pole": pole})
    require_manager(member, pole)
    steps_data = _validate_formation_payload(data)

    storage = get_storage()
    new_keys: list[str] = []
    try:
        formation = Formation(
            title=data["title"].strip(),
            description=(data.get("description") or "").strip() or None,
            pole=pole,
            created_by=member.id,
        )
        db.session.add(formation)
        db.session.flush()
        for index, step_data in enumerate(steps_data):
            step = FormationStep(formation_id=formation.id, order_index=index)
            _apply_step_fields(step, step_data)
            db.session.add(step)
            db.session.flush()
            _upload_documents(storage, step, (documents or {}).get(index), member.id, new_keys)
        db.session.commit()
    except Exception:
        db.session.rollback()
        _discard_files(storage, new_keys)
        raise

    logger.info("Formation created: %s (%d steps)", formation.id, len(steps_data),
                extra={"member_id": member.id, "formation_id": formation.id})
    return formation


def update_formation(member, formation: Formation, data: dict, documents: dict | None = None) -> Formation:
    """Update a formation and reconcile its step list.

    Each entry of ``data["steps"]`` is either an existing step (``id``) to
    keep and update, or a new step (no ``id``). Existing steps absent from
    the list are deleted with their documents. Positions in the list
    become the new ``order_index``. ``remove_document_ids`` on a step
    deletes those documents.
    """
    require_manager(member, formation)
    steps_data = _validate_formation_payload(data)

    existing = {s.id: s for s in formation.steps}
    listed_ids = [s.get("id") for s in steps_data if s.get("id") is not None]
    duplicated = {step_id for step_id, n in Counter(listed_ids).items() if n > 1}
    if duplicated:
        raise ValidationError("Étape listée plusieurs fois.", details={"steps": sorted(duplicated)})
    kept_ids = set(listed_ids)
    unknown = kept_ids - set(existing)
    if unknown:
        raise ValidationError("Étape inconnue pour cette formation.",
                              details={"steps": sorted(unknown)})

    storage = get_storage()
    new_keys: list[str] = []
    removed_keys: list[str] = []
    try:
        formation.title = data["title"].strip()
        formation.description = (data.get("description") or "").strip() or None

        for step_id, step in existing.items():
            if step_id not in kept_ids:
                removed_keys.extend(d.storage_path for d in step.documents)
                removed_keys.extend(sub.storage_path for sub in step.submissions)
                formation.steps.remove(step)
        db.session.flush()

        # Park kept steps on negative indexes so re-ordering never collides
        for temp, step_id in enumerate(kept_ids, start=1):
            existing[step_id].order_index = -temp
        db.session.flush()

        for index, step_data in enumerate(steps_data):
            step_id = step_data.get("id")
            if step_id is None:
                step = FormationStep(formation_id=formation.id, order_index=index)
                _apply_step_fields(step, step_data)
                formation.steps.append(step)
                db.session.flush()
            else:
                step = existing[step_id]
                step.order_index = index
                _apply_step_fields(step, step_data)
                remove_ids = set(step_data.get("remove_document_ids") or [])
                for document in list(step.documents):
                    if document.id in remove_ids:
                        removed_keys.append(document.storage_path)
                        step.documents.remove(document)
            _upload_documents(storage, step, (documents or {}).get(index), member.id, new_keys)

        db.session.commit()
    except Exception:
        db.session.rollback()
        _discard_files(storage, new_keys)
        raise

    _discard_files(storage, removed_keys)
    logger.info("Formation updated: %s", formation.id,
                extra={"member_id": member.id, "formation_id": formation.id})
    return formation


def delete_formation(member, formation: Formation) -> None:
    """Delete a formation and everything below it, then its stored files."""
    require_manager(member, formation)
    keys = [d.storage_path for s in formation.steps for d in s.documents]
    keys += [sub.storage_path for e in formation.enrollments for sub in e.submissions]
    formation_id = formation.id
    db.session.delete(formation)
    commit_or_rollback()
    _discard_files(get_storage(), keys)
    logger.info("Formation deleted: %s", formation_id,
                extra={"member_id": member.id, "formation_id": formation_id})
