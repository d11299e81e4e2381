from __future__ import annotations

import logging
from typing import Iterable, Mapping

from coincast.models.prediction import Prediction
from coincast.registry.store import PredictionStore

logger = logging.getLogger(__name__)


def net_score(voters: Mapping[str, int]) -> int:
    """Signed sum of all active votes."""
    return sum(voters.values())


def has_drift(prediction: Prediction) -> bool:
    return prediction.net_score != net_score(prediction.voters)


def repair(store: PredictionStore, prediction: Prediction) -> Prediction | None:
    """Overwrite a drifted stored score from the voters map.

    Returns the repaired prediction as written, or None when nothing was
    written (unsaved, deleted, or the store failed).
    """
    logger.warning(
        "Consistency drift on prediction %s: stored net_score=%d, voters sum=%d; repairing",
        prediction.id, prediction.net_score, net_score(prediction.voters),
    )
    if prediction.id is None:
        return None
    try:
        return store.repair_net_score(prediction.id)
    except Exception:
        logger.exception("Failed to repair net_score for prediction %s", prediction.id)
        return None


def reconcile(store: PredictionStore, prediction: Prediction) -> Prediction:
    """Return ``prediction`` with a score that agrees with its voters map.

    A mismatch means an update was missed somewhere. It is logged and the
    stored score is overwritten from the ledger; callers never see an error.
    If the write fails the caller still gets a locally healed copy.
    """
    if not has_drift(prediction):
        return prediction
    healed = repair(store, prediction)
    if healed is None:
        return prediction.with_votes(net_score(prediction.voters), prediction.voters)
    return healed


def reconcile_all(store: PredictionStore, predictions: Iterable[Prediction]) -> list[int]:
    """Heal every drifted prediction. Returns the ids whose repair was written."""
    repaired: list[int] = []
    failed = 0
    for prediction in predictions:
        if not has_drift(prediction):
            continue
        if repair(store, prediction) is not None:
            repaired.append(prediction.id)
        else:
            failed += 1
    if repaired:
        logger.info("Reconciled %d drifted predictions", len(repaired))
    if failed:
        logger.warning("%d drifted predictions could not be repaired", failed)
    return repaired
