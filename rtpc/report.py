from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence

from .results import EncodeResult
from .settings import ConversionSettings, Recommendation, SourceImage
from .validate import Correction


@dataclass(frozen=True)
class ConversionReport:
    created_utc: str
    source: dict
    settings: dict
    output: dict
    recommendation: Optional[dict]
    corrections: List[dict]


def build_report(
    source: SourceImage,
    settings: ConversionSettings,
    result: EncodeResult,
    recommendation: Optional[Recommendation] = None,
    corrections: Sequence[Correction] = (),
    out_path: Optional[Path] = None,
) -> ConversionReport:
    created_utc = datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")

    output = {
        "path": str(out_path) if out_path else None,
        "format": result.format,
        "width": result.width,
        "height": result.height,
        "bytes": result.byte_size,
        "saved_bytes": result.saved_bytes,
        "saved_percent": round(result.saved_percent, 2),
    }

    return ConversionReport(
        created_utc=created_utc,
        source=asdict(source),
        settings=asdict(settings),
        output=output,
        recommendation=asdict(recommendation) if recommendation else None,
        corrections=[asdict(c) for c in corrections],
    )


def save_report_json(report: ConversionReport, path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with path.open("w", encoding="utf-8") as f:
        json.dump(asdict(report), f, indent=2, ensure_ascii=False)
