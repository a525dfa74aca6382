"""Health checks over compiled artifacts.

Nothing here blocks compilation; every finding is a warning for the
session lead to act on.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any

from artifacts.anchors import out_of_range_anchors
from artifacts.delta_compiler import Artifact, CompilerSettings
from artifacts.sections import (
    ADVERSARIAL_CRITIQUE,
    ANOMALY_REGISTER,
    ASSUMPTION_LEDGER,
    HYPOTHESIS_SLATE,
)


@dataclass(frozen=True)
class ArtifactWarning:
    code: str
    section: str
    message: str
    key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def artifact_warnings(
    artifacts: dict[str, Artifact],
    settings: CompilerSettings | None = None,
) -> list[ArtifactWarning]:
    """Collect every health warning for a compiled set of artifacts."""
    cfg = settings or CompilerSettings()
    warnings: list[ArtifactWarning] = []

    for section, minimum in cfg.minimum_counts.items():
        artifact = artifacts.get(section)
        count = len(artifact.entries) if artifact else 0
        if count < minimum:
            warnings.append(
                ArtifactWarning(
                    code="BELOW_MINIMUM",
                    section=section,
                    message=f"{section} has {count} live entries, expected at least {minimum}",
                )
            )

    hypotheses = artifacts.get(HYPOTHESIS_SLATE)
    if hypotheses and hypotheses.entries and not any(
        entry.get("third_alternative") for entry in hypotheses.entries.values()
    ):
        warnings.append(
            ArtifactWarning(
                code="NO_THIRD_ALTERNATIVE",
                section=HYPOTHESIS_SLATE,
                message="No hypothesis is marked as the third alternative",
            )
        )

    assumptions = artifacts.get(ASSUMPTION_LEDGER)
    if assumptions and assumptions.entries and not any(
        entry.get("scale_check") for entry in assumptions.entries.values()
    ):
        warnings.append(
            ArtifactWarning(
                code="NO_SCALE_CHECK",
                section=ASSUMPTION_LEDGER,
                message="No assumption carries a scale check",
            )
        )

    critiques = artifacts.get(ADVERSARIAL_CRITIQUE)
    if critiques and critiques.entries and not any(
        entry.get("real_third_alternative") for entry in critiques.entries.values()
    ):
        warnings.append(
            ArtifactWarning(
                code="NO_REAL_THIRD_ALTERNATIVE",
                section=ADVERSARIAL_CRITIQUE,
                message="No critique proposes a real third alternative",
            )
        )

    anomalies = artifacts.get(ANOMALY_REGISTER)
    live_hypotheses = set(hypotheses.entries) if hypotheses else set()
    if anomalies:
        for key, entry in anomalies.entries.items():
            for target in entry.get("conflicts_with", []):
                if target.startswith("H") and target not in live_hypotheses:
                    warnings.append(
                        ArtifactWarning(
                            code="DANGLING_REFERENCE",
                            section=ANOMALY_REGISTER,
                            key=key,
                            message=f"{key} conflicts with {target}, which is not a live hypothesis",
                        )
                    )

    if cfg.transcript_sections is not None:
        for name in sorted(artifacts):
            for key, entry in artifacts[name].entries.items():
                text = json.dumps(entry, ensure_ascii=False)
                for number in out_of_range_anchors(text, cfg.transcript_sections):
                    warnings.append(
                        ArtifactWarning(
                            code="ANCHOR_OUT_OF_RANGE",
                            section=name,
                            key=key,
                            message=f"§{number} is outside the transcript (1-{cfg.transcript_sections})",
                        )
                    )
    return warnings
