from __future__ import annotations

from .features import FeaturePlan, FeatureSet, feature_tags, plan_features
from .models import CardConfiguration
from .naming import feature_name, js_string


def generate_spec(config: CardConfiguration, test_type: str = "css") -> str:
    feature_set = plan_features(config, test_type)
    entries = "".join(_render_feature(config, feature_set, feature) for feature in feature_set.features)
    return (
        "export default {\n"
        f"    FeatureName: {js_string(feature_name(config.card_type))},\n"
        f"    features: [{entries}\n"
        "    ],\n"
        "};\n"
    )


def _render_feature(config: CardConfiguration, feature_set: FeatureSet, feature: FeaturePlan) -> str:
    data_lines = [f"                cardid: {js_string(feature_set.card_id)},"]
    data_lines.extend(f"                {key}: {js_string(value)}," for key, value in feature.data)
    return (
        "\n        {\n"
        f"            tcid: '{feature.tcid}',\n"
        f"            name: {js_string(f'@studio-{config.card_type}-{feature.slug}')},\n"
        f"            path: {js_string(feature_set.path)},\n"
        "            data: {\n"
        + "\n".join(data_lines)
        + "\n            },\n"
        f"            browserParams: {js_string(feature_set.browser_params)},\n"
        f"            tags: {js_string(feature_tags(config, feature_set.test_type))},\n"
        "        },"
    )
