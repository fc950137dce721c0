"""Thin scikit-learn binding for model-based level pooling."""

from typing import Any, Dict, Hashable, Optional

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression, LogisticRegression
from sklearn.preprocessing import OneHotEncoder

from catembed.features.aggregation import resolve_event_class
from catembed.utils import get_logger
from catembed.utils.exceptions import ConfigurationError

logger = get_logger(__name__)

# Large inverse regularisation: effectively an unpenalised logistic fit
UNPENALISED_C = 1e8


class GLMLevelModel:
    """Intercept-free GLM on one-hot level indicators.

    Each coefficient is that level's effect: the weighted mean for a numeric
    outcome, the weighted log-odds for a binary one. Use with
    ``external_model`` mode; the encoding core only calls
    ``predict_per_level``.
    """

    def __init__(self, family: str = "auto", event_class: Optional[Any] = None, max_iter: int = 1000):
        if family not in ("auto", "gaussian", "binomial"):
            raise ConfigurationError(f"Unknown GLM family {family!r}")
        self.family = family
        self.event_class = event_class
        self.max_iter = max_iter
        self.coefficients_: Dict[Hashable, float] = {}

    def _resolve_family(self, y: pd.Series) -> str:
        if self.family != "auto":
            return self.family
        if self.event_class is not None or pd.api.types.is_bool_dtype(y.dtype):
            return "binomial"
        if pd.api.types.is_numeric_dtype(y.infer_objects().dtype):
            return "gaussian"
        return "binomial"

    def fit(self, categories, y, sample_weight=None) -> "GLMLevelModel":
        categories = pd.Series(np.asarray(categories, dtype=object))
        y = pd.Series(np.asarray(y))
        keep = categories.notna() & y.notna()
        categories, y = categories[keep].reset_index(drop=True), y[keep].reset_index(drop=True)
        if sample_weight is not None:
            sample_weight = np.asarray(sample_weight, dtype=float)[keep.to_numpy()]

        self.family_ = self._resolve_family(y)
        self.encoder_ = OneHotEncoder(handle_unknown="ignore", sparse_output=False)
        design = self.encoder_.fit_transform(categories.to_frame())

        if self.family_ == "gaussian":
            model = LinearRegression(fit_intercept=False)
            model.fit(design, y.astype(float), sample_weight=sample_weight)
            coefs = np.ravel(model.coef_)
        else:
            is_event, _ = resolve_event_class(y, self.event_class)
            target = is_event.astype(int)
            if target.nunique() < 2:
                raise ConfigurationError("Binomial GLM needs both outcome classes")
            model = LogisticRegression(fit_intercept=False, C=UNPENALISED_C, max_iter=self.max_iter)
            model.fit(design, target, sample_weight=sample_weight)
            coefs = np.ravel(model.coef_)

        self.model_ = model
        self.coefficients_ = dict(zip(self.encoder_.categories_[0].tolist(), coefs.tolist()))
        logger.info(f"Fitted {self.family_} GLM over {len(self.coefficients_)} levels")
        return self

    def predict_per_level(self, level: Hashable) -> float:
        return self.coefficients_[level]
