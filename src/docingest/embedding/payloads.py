"""Request/response models for the V2 inference protocol used by the embedding backend."""

from __future__ import annotations

from numbers import Real
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from docingest.errors import EmbeddingError


class InferenceInput(BaseModel):
    name: str
    shape: List[int]
    datatype: str = "BYTES"
    data: List[str]


class InferenceRequest(BaseModel):
    inputs: List[InferenceInput]

    @classmethod
    def for_texts(cls, texts: Sequence[str], input_name: str = "text") -> "InferenceRequest":
        return cls(
            inputs=[InferenceInput(name=input_name, shape=[len(texts)], data=list(texts))]
        )


class InferenceOutput(BaseModel):
    name: str = ""
    shape: List[int] = Field(default_factory=list)
    datatype: str = ""
    data: List[Any] = Field(default_factory=list)


class InferenceResponse(BaseModel):
    model_name: str = ""
    model_version: Optional[str] = None
    outputs: List[InferenceOutput] = Field(default_factory=list)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def normalize_embedding_data(data: Sequence[Any], shape: Optional[Sequence[int]] = None) -> List[List[float]]:
    """Turn an output ``data`` field into a list of equal-length float vectors.

    Accepted forms:
      * array of arrays - one vector per row
      * flat array with a two dimensional ``shape`` ``[n, d]`` - reshaped into n rows
      * flat array otherwise - a single vector
    """
    if not data:
        raise EmbeddingError("Embedding response contained no data")

    if all(isinstance(row, list) for row in data):
        vectors = []
        for row in data:
            if not row or not all(_is_number(value) for value in row):
                raise EmbeddingError("Embedding response row is empty or not numeric")
            vectors.append([float(value) for value in row])
    elif all(_is_number(value) for value in data):
        flat = [float(value) for value in data]
        if shape is not None and len(shape) == 2 and shape[0] * shape[1] == len(flat) and shape[0] > 0:
            width = shape[1]
            vectors = [flat[i : i + width] for i in range(0, len(flat), width)]
        else:
            vectors = [flat]
    else:
        raise EmbeddingError("Embedding response mixes nested and flat values")

    width = len(vectors[0])
    if any(len(vector) != width for vector in vectors):
        raise EmbeddingError("Embedding response vectors have unequal lengths")
    return vectors


def parse_embedding_outputs(
    payload: Any,
    expected_count: int,
    dimension: Optional[int] = None,
) -> List[List[float]]:
    """Validate a raw inference response and return ``expected_count`` vectors."""
    try:
        response = InferenceResponse.model_validate(payload)
    except ValidationError as exc:
        raise EmbeddingError(f"Malformed embedding response: {exc}") from exc

    if not response.outputs:
        raise EmbeddingError("Embedding response has no outputs")

    output = response.outputs[0]
    vectors = normalize_embedding_data(output.data, output.shape)

    if len(vectors) != expected_count:
        raise EmbeddingError(
            f"Embedding backend returned {len(vectors)} vector(s) for {expected_count} input(s)"
        )
    if dimension is not None and len(vectors[0]) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vectors[0])}"
        )
    return vectors
