"""
Signal synthesizer: one symbol's data in, one ``Signal`` (or a refusal) out.

Steps
-----
1.  ``build_snapshot`` — short series give a partial snapshot, not an error.
2.  ``build_analysis_prompt`` — technical, fundamental and analyst blocks.
3.  ``backend.generate`` — a ``BackendUnavailableError`` becomes a
    ``BackendUnavailable`` outcome. No signal is invented on failure.
4.  ``ResponseValidator.validate_deep_analysis`` — always yields a two-horizon
    ``DeepAnalysis``.
5.  ``fuse_horizons`` — the overall ``Signal``.

The backend is non-deterministic; nothing here assumes two calls with the
same prompt return the same text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from stock_signals.config import BackendConfig, IndicatorConfig
from stock_signals.errors import BackendUnavailableError
from stock_signals.indicators.snapshot import IndicatorSnapshot, build_snapshot
from stock_signals.models.market import AnalystTarget, FundamentalRatios, PriceSeries
from stock_signals.models.signal import DeepAnalysis, Signal, clamp_confidence
from stock_signals.synthesis.backend import GenerativeBackend
from stock_signals.synthesis.prompts import build_analysis_prompt
from stock_signals.validation.validator import ResponseValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendUnavailable:
    """The backend could not answer; no signal this cycle."""

    symbol: str
    reason: str
    status_code: Optional[int] = None
    message: str = ""


@dataclass(frozen=True)
class Synthesis:
    """A completed synthesis.

    Attributes:
        symbol:   Ticker.
        signal:   Fused overall signal.
        analysis: Two-horizon detail with price levels, risks, opportunities.
        snapshot: Indicator readings the prompt was built from.
        method:   ``parsed``, ``repaired`` or ``fallback``.
    """

    symbol: str
    signal: Signal
    analysis: DeepAnalysis
    snapshot: IndicatorSnapshot
    method: str


SynthesisOutcome = Union[Synthesis, BackendUnavailable]


def fuse_horizons(short: Signal, long: Signal) -> Signal:
    """Combine short- and long-horizon signals into one.

    Direction: any BUY wins over HOLD, any SELL wins over HOLD, and a
    BUY/SELL split follows the short horizon. Confidence is the rounded mean
    of the two, clamped to [0, 100].
    """
    types = {short.signal_type, long.signal_type}
    if len(types) == 1:
        signal_type = short.signal_type
    elif types == {"BUY", "SELL"}:
        signal_type = short.signal_type
    else:
        signal_type = "BUY" if "BUY" in types else "SELL"

    if short.summary == long.summary:
        summary = short.summary
    else:
        summary = f"Ngắn hạn: {short.summary} Dài hạn: {long.summary}"

    return Signal(
        signal_type=signal_type,
        confidence=clamp_confidence((short.confidence + long.confidence) / 2),
        summary=summary,
    )


class SignalSynthesizer:
    """Builds the prompt, calls the backend and validates the reply.

    Args:
        backend:           Generative backend.
        indicator_config:  Periods used for the snapshot.
        backend_config:    Generation parameters (temperature, max tokens).
        validator:         Reply validator; a fresh one by default.
        min_confidence:    Directional-call threshold quoted in the prompt.
    """

    def __init__(
        self,
        backend: GenerativeBackend,
        indicator_config: Optional[IndicatorConfig] = None,
        backend_config: Optional[BackendConfig] = None,
        validator: Optional[ResponseValidator] = None,
        min_confidence: int = 65,
    ) -> None:
        self.backend = backend
        self.indicator_config = indicator_config or IndicatorConfig()
        self.backend_config = backend_config or BackendConfig()
        self.validator = validator or ResponseValidator()
        self.min_confidence = min_confidence

    def synthesize(
        self,
        series: PriceSeries,
        ratios: Optional[FundamentalRatios] = None,
        analyst_targets: Optional[Sequence[AnalystTarget]] = None,
        snapshot: Optional[IndicatorSnapshot] = None,
    ) -> SynthesisOutcome:
        """Run one synthesis for ``series.symbol``.

        Args:
            series:          Price history (ascending).
            ratios:          Optional fundamentals.
            analyst_targets: Optional broker calls.
            snapshot:        Precomputed snapshot; built from ``series`` if absent.

        Raises:
            DataUnavailableError: If ``series`` is empty.
        """
        if snapshot is None:
            snapshot = build_snapshot(series, self.indicator_config)

        prompt = build_analysis_prompt(
            series.symbol,
            snapshot,
            ratios=ratios,
            analyst_targets=analyst_targets,
            min_confidence=self.min_confidence,
        )

        try:
            reply = self.backend.generate(
                prompt,
                temperature=self.backend_config.temperature,
                max_tokens=self.backend_config.max_output_tokens,
            )
        except BackendUnavailableError as exc:
            logger.warning("%s: backend unavailable (%s)", series.symbol, exc.reason)
            return BackendUnavailable(
                symbol=series.symbol,
                reason=exc.reason,
                status_code=exc.status_code,
                message=str(exc),
            )

        result = self.validator.validate_deep_analysis(reply)
        analysis = result.analysis
        signal = fuse_horizons(analysis.short_term.signal, analysis.long_term.signal)
        logger.info(
            "%s: %s @ %d (%s)", series.symbol, signal.signal_type, signal.confidence, result.method
        )
        return Synthesis(
            symbol=series.symbol,
            signal=signal,
            analysis=analysis,
            snapshot=snapshot,
            method=result.method,
        )
