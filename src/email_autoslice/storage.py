from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import shutil
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from PIL import Image

from email_autoslice.assembly.crop import CroppedSlice, pil_to_png_bytes
from email_autoslice.config import settings

logger = logging.getLogger(__name__)

_RUN_ID = re.compile(r"[0-9a-f]{12}")


@dataclass(frozen=True)
class RunImage:
    image_id: str
    kind: str  # source|slice|preview
    rel_path: str
    sha256: str
    width: int
    height: int
    # Slice placement in the source screenshot; None for source/preview.
    index: int | None = None
    y_top: int | None = None
    y_bottom: int | None = None


@dataclass
class SliceRun:
    run_id: str
    name: str
    brand_name: str | None
    created_at: str
    image_width: int
    image_height: int
    images: list[RunImage] = field(default_factory=list)
    result: dict[str, Any] | None = None

    def image(self, image_id: str) -> RunImage | None:
        return next((i for i in self.images if i.image_id == image_id), None)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> "SliceRun":
        return SliceRun(
            run_id=d["run_id"],
            name=d["name"],
            brand_name=d.get("brand_name"),
            created_at=d["created_at"],
            image_width=int(d["image_width"]),
            image_height=int(d["image_height"]),
            images=[RunImage(**i) for i in d.get("images", [])],
            result=d.get("result"),
        )


class RunStore:
    """
    One directory per slicing run under `<data_dir>/runs/<run_id>/`.

    `run.json` is the manifest. It is rewritten once per store call, via a temp
    file and `os.replace`, so readers never see a half-written manifest.
    Run ids are 12 lowercase hex chars; anything else is rejected before it
    touches the filesystem.
    """

    def __init__(self, root_dir: Path | None = None) -> None:
        self.runs_dir = Path(root_dir or settings.data_dir).resolve() / "runs"
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    def _run_dir(self, run_id: str) -> Path:
        if not _RUN_ID.fullmatch(run_id or ""):
            raise ValueError(f"invalid run id: {run_id!r}")
        return self.runs_dir / run_id

    def create_run(
        self,
        name: str,
        source: bytes,
        image_width: int,
        image_height: int,
        source_format: str = "png",
        brand_name: str | None = None,
    ) -> SliceRun:
        run_id = uuid.uuid4().hex[:12]
        run_dir = self._run_dir(run_id)
        run_dir.mkdir(parents=True)

        ext = re.sub(r"[^a-z0-9]", "", source_format.lower()) or "bin"
        run = SliceRun(
            run_id=run_id,
            name=name,
            brand_name=(brand_name or "").strip() or None,
            created_at=datetime.now(timezone.utc).isoformat(),
            image_width=int(image_width),
            image_height=int(image_height),
        )
        run.images.append(_write_image(run_dir, f"source.{ext}", source, "source", image_width, image_height))
        self._save(run)
        return run

    def add_slices(self, run_id: str, crops: Iterable[CroppedSlice]) -> list[RunImage]:
        run = self.read_run(run_id)
        run_dir = self._run_dir(run_id)
        added = [
            _write_image(
                run_dir,
                f"slices/slice_{c.index:02d}.png",
                pil_to_png_bytes(c.image),
                "slice",
                c.image.width,
                c.image.height,
                index=c.index,
                y_top=c.slice.y_top,
                y_bottom=c.slice.y_bottom,
            )
            for c in crops
        ]
        run.images.extend(added)
        self._save(run)
        return added

    def add_preview(self, run_id: str, image: Image.Image) -> RunImage:
        run = self.read_run(run_id)
        preview = _write_image(
            self._run_dir(run_id), "preview.png", pil_to_png_bytes(image), "preview", image.width, image.height
        )
        run.images.append(preview)
        self._save(run)
        return preview

    def write_result(self, run_id: str, result: dict[str, Any]) -> None:
        run = self.read_run(run_id)
        run.result = result
        self._save(run)

    def read_run(self, run_id: str) -> SliceRun:
        path = self._run_dir(run_id) / "run.json"
        return SliceRun.from_dict(json.loads(path.read_text("utf-8")))

    def list_runs(self) -> list[SliceRun]:
        out: list[SliceRun] = []
        for manifest in self.runs_dir.glob("*/run.json"):
            try:
                out.append(self.read_run(manifest.parent.name))
            except (OSError, ValueError, KeyError, TypeError) as exc:
                logger.warning("skipping unreadable run %s: %s", manifest.parent.name, exc)
        return sorted(out, key=lambda r: r.created_at)

    def image_path(self, run_id: str, image: RunImage) -> Path:
        return self._run_dir(run_id) / image.rel_path

    def delete_run(self, run_id: str) -> None:
        run_dir = self._run_dir(run_id)
        if run_dir.exists():
            shutil.rmtree(run_dir)

    def _save(self, run: SliceRun) -> None:
        path = self._run_dir(run.run_id) / "run.json"
        tmp = path.with_name("run.json.tmp")
        tmp.write_text(json.dumps(asdict(run), indent=2), encoding="utf-8")
        os.replace(tmp, path)


def _write_image(
    run_dir: Path,
    rel_path: str,
    content: bytes,
    kind: str,
    width: int,
    height: int,
    **placement: int,
) -> RunImage:
    path = run_dir / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return RunImage(
        image_id=uuid.uuid4().hex[:12],
        kind=kind,
        rel_path=rel_path,
        sha256=hashlib.sha256(content).hexdigest(),
        width=int(width),
        height=int(height),
        **placement,
    )
