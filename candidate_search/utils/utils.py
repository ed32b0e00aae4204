import math
from typing import List, Optional

import numpy as np
import requests

DEFAULT_OLLAMA = "http://localhost:11434"


def _json_object(resp) -> dict:
    data = resp.json()
    if not isinstance(data, dict):
        raise ValueError(f"Ollama returned {type(data).__name__}, expected a JSON object")
    return data


def ollama_generate(
    prompt: str,
    model: str,
    system: Optional[str] = None,
    temperature: float = 0.7,
    max_tokens: Optional[int] = None,
    base_url: str = DEFAULT_OLLAMA,
    timeout: float = 120,
) -> str:
    url = f"{base_url.rstrip('/')}/api/generate"
    options = {"temperature": temperature}
    if max_tokens:
        options["num_predict"] = max_tokens
    payload = {
        "model": model,
        "prompt": prompt,
        "options": options,
        "stream": False  # single JSON body
    }
    if system:
        payload["system"] = system
    resp = requests.post(url, json=payload, timeout=timeout)
    resp.raise_for_status()
    text = _json_object(resp).get("response")
    return text if isinstance(text, str) else ""


def ollama_embed(text: str, model: str, base_url: str = DEFAULT_OLLAMA, timeout: float = 60) -> List[float]:
    url = f"{base_url.rstrip('/')}/api/embed"
    resp = requests.post(url, json={"model": model, "input": text}, timeout=timeout)
    resp.raise_for_status()
    data = _json_object(resp)
    embeddings = data.get("embeddings") or []
    if not embeddings:
        raise ValueError("Ollama returned no embeddings")
    return [float(x) for x in embeddings[0]]


def cosine_similarity(a, b) -> float:
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    if va.shape != vb.shape:
        raise ValueError(f"Dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")
    den = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if den == 0.0:
        return 0.0
    return float(np.dot(va, vb)) / den


def to_accuracy(similarity: Optional[float]) -> int:
    """Similarity -> integer percentage, rounded half up and clamped to 0..100."""
    pct = math.floor((similarity or 0.0) * 100 + 0.5)
    return max(0, min(100, int(pct)))
