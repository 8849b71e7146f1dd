"""Concrete output shapes, one per declared output kind.

1. FeatureCollectionShape: {"features": [...], "geometryType": ..., ...}
2. RasterShape: {"url": "...", "format": ...} or {"mapImage": {"href": "..."}}
3. ScalarShape: a bare JSON number, string or boolean
4. NamedOutputsShape: {"results": [{"paramName": ..., "value"|"paramUrl": ...}]}
   or {"results": {"<name>": {"paramUrl": ...}}}
"""

from typing import Any, Dict

from geojob.core.exceptions import TypeMismatchError
from geojob.core.models.result import (
    DeclaredOutput,
    FeatureCollectionOutput,
    NamedOutputsOutput,
    OutputKind,
    RasterOutput,
    ScalarOutput,
    ScalarType,
)

# GP dataType -> what it may be declared as. Unlisted dataTypes are not checked.
GP_DATA_TYPES: Dict[str, tuple[OutputKind, ScalarType | None]] = {
    "GPFeatureRecordSetLayer": (OutputKind.feature_collection, None),
    "GPRecordSet": (OutputKind.feature_collection, None),
    "GPRasterDataLayer": (OutputKind.raster, None),
    "GPRasterData": (OutputKind.raster, None),
    "GPDouble": (OutputKind.scalar, ScalarType.double),
    "GPLong": (OutputKind.scalar, ScalarType.long),
    "GPString": (OutputKind.scalar, ScalarType.string),
    "GPBoolean": (OutputKind.scalar, ScalarType.boolean),
}


def json_type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


class FeatureCollectionShape:
    kind = OutputKind.feature_collection

    def matches(self, value: Any) -> bool:
        return isinstance(value, dict) and isinstance(value.get("features"), list)

    def build(self, value: Any, declared: DeclaredOutput) -> FeatureCollectionOutput:
        features = value["features"]
        for index, feature in enumerate(features):
            if not isinstance(feature, dict):
                raise TypeMismatchError(
                    expected="feature object",
                    actual=json_type_name(feature),
                    detail=f"features[{index}]",
                )
        fields = value.get("fields")
        return FeatureCollectionOutput(
            features=features,
            geometry_type=value.get("geometryType"),
            spatial_reference=value.get("spatialReference"),
            fields=fields if isinstance(fields, list) else [],
        )


class RasterShape:
    kind = OutputKind.raster

    def matches(self, value: Any) -> bool:
        if not isinstance(value, dict):
            return False
        if isinstance(value.get("url"), str):
            return True
        map_image = value.get("mapImage")
        return isinstance(map_image, dict) and isinstance(map_image.get("href"), str)

    def build(self, value: Any, declared: DeclaredOutput) -> RasterOutput:
        if isinstance(value.get("url"), str):
            return RasterOutput(url=value["url"], format=value.get("format"))
        map_image = value["mapImage"]
        return RasterOutput(url=map_image["href"], format=map_image.get("format"))


class ScalarShape:
    kind = OutputKind.scalar

    def matches(self, value: Any) -> bool:
        return isinstance(value, (bool, int, float, str))

    def build(self, value: Any, declared: DeclaredOutput) -> ScalarOutput:
        expected = declared.scalar_type
        if expected == ScalarType.boolean:
            ok = isinstance(value, bool)
        elif expected == ScalarType.long:
            ok = isinstance(value, int) and not isinstance(value, bool)
        elif expected == ScalarType.double:
            ok = isinstance(value, (int, float)) and not isinstance(value, bool)
        else:
            ok = isinstance(value, str)
        if not ok:
            raise TypeMismatchError(
                expected=str(expected),
                actual=json_type_name(value),
                detail=f"value={value!r}",
            )
        if expected == ScalarType.double:
            value = float(value)
        return ScalarOutput(scalar_type=expected, value=value)


class NamedOutputsShape:
    kind = OutputKind.named_outputs

    def matches(self, value: Any) -> bool:
        if not isinstance(value, dict):
            return False
        results = value.get("results")
        if isinstance(results, list):
            return all(
                isinstance(r, dict) and isinstance(r.get("paramName"), str) for r in results
            )
        if isinstance(results, dict):
            return all(isinstance(r, dict) for r in results.values())
        return False

    def build(self, value: Any, declared: DeclaredOutput) -> NamedOutputsOutput:
        results = value["results"]
        outputs: Dict[str, Any] = {}
        if isinstance(results, list):
            for entry in results:
                name = entry["paramName"]
                if "value" in entry:
                    outputs[name] = entry["value"]
                else:
                    outputs[name] = {"paramUrl": entry.get("paramUrl")}
        else:
            for name, entry in results.items():
                outputs[name] = entry.get("value", {"paramUrl": entry.get("paramUrl")})
        return NamedOutputsOutput(outputs=outputs)


def default_shapes():
    return {
        shape.kind: shape
        for shape in (
            FeatureCollectionShape(),
            RasterShape(),
            ScalarShape(),
            NamedOutputsShape(),
        )
    }
