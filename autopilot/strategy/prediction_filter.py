"""Buy-prediction filter — classifies a labelled batch of model scores."""

from typing import Optional

import numpy as np

from autopilot.broker.models import PredictionBatch

BULLISH_THRESHOLD = 0.6
BEARISH_THRESHOLD = 0.3


def is_buy_prediction(batch: Optional[PredictionBatch]) -> Optional[bool]:
    """Return True (bullish), False (bearish) or None (inconclusive).

    The mean of the batch's prediction values is compared against
    ``BULLISH_THRESHOLD`` (strictly above) and ``BEARISH_THRESHOLD``
    (strictly below). Empty or missing batches are inconclusive.
    """
    if batch is None or not batch.values:
        return None
    mean = float(np.mean([p.prediction for p in batch.values]))
    if mean > BULLISH_THRESHOLD:
        return True
    if mean < BEARISH_THRESHOLD:
        return False
    return None
