from .values import (
    MISSING,
    Missing,
    MultiLang,
    ObjectSet,
    Scalar,
    ScalarValue,
    Variant,
    decode_node,
    resolve,
)

__all__ = [
    "MISSING",
    "Missing",
    "MultiLang",
    "ObjectSet",
    "Scalar",
    "ScalarValue",
    "Variant",
    "decode_node",
    "resolve",
]
