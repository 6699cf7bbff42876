# src/bamsummarize/sentinels.py
from __future__ import annotations
import os, json, time, hashlib
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Any

from . import __version__


def _sha256_json(obj: object) -> str:
    return hashlib.sha256(json.dumps(obj, sort_keys=True, separators=(",", ":")).encode()).hexdigest()


def _inputs_meta(paths: Iterable[Path]) -> List[Tuple[str, int, float]]:
    meta = []
    for p in map(Path, paths):
        st = p.stat()
        meta.append((str(p), st.st_size, st.st_mtime))
    return meta


def fingerprint(params: Dict[str, Any], inputs: Iterable[Path]) -> Dict[str, str]:
    return {
        "params_sha256": _sha256_json(params),
        "inputs_sha256": _sha256_json(_inputs_meta(inputs)),
    }


def _sent_base(workdir: Path) -> Path:
    return Path(workdir) / "_jobs"


def job_sentinel_path(workdir: Path, job: str) -> Path:
    out = _sent_base(workdir) / f"{job}.ok.json"
    out.parent.mkdir(parents=True, exist_ok=True)
    return out


def write_sentinel(path: Path, payload: Dict) -> None:
    tmp = Path(str(path) + ".tmp")
    with tmp.open("w") as f:
        json.dump(payload, f, indent=2, sort_keys=True)
        f.write("\n")
    os.replace(tmp, path)


def make_payload(job: str, fp: Dict[str, str], inputs, outputs, pid: int, started: float,
                 counters: Dict[str, Any] | None = None, note: str = "") -> Dict:
    return {
        "job": job,
        "status": "ok",
        "created_at": time.strftime("%Y-%m-%dT%H:%M:%S%z", time.localtime()),
        "bamsummarize_version": __version__,
        "fingerprint": fp,
        "inputs": list(map(str, inputs)),
        "outputs": list(map(str, outputs)),
        "hostname": os.uname().nodename if hasattr(os, "uname") else "unknown",
        "pid": pid,
        "duration_sec": round(time.time() - started, 3),
        "counters": counters or {},
        "note": note,
    }
