"""
capability.py / devices.base の属性パースのテスト
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from capability import CapabilityProfile, detect_profile
from devices.base import ActuatorDescriptor, parse_device_messages

# Intiface が Sam Neo 2 Pro について返す DeviceMessages 相当
NEO2_MESSAGES = {
    "ScalarCmd": [
        {"FeatureDescriptor": "Vibrator", "StepCount": 20, "ActuatorType": "Vibrate"},
        {"FeatureDescriptor": "Suction", "StepCount": 5, "ActuatorType": "Constrict"},
    ],
    "StopDeviceCmd": {},
}

ORIGINAL_MESSAGES = {
    "ScalarCmd": [
        {"FeatureDescriptor": "", "StepCount": 20, "ActuatorType": "Vibrate"},
        {"FeatureDescriptor": "", "StepCount": 20, "ActuatorType": "Vibrate"},
    ],
    "StopDeviceCmd": {},
}


class TestDetectProfile:

    def test_vibrate_plus_constrict_is_indexed_dual(self):
        attrs = parse_device_messages(NEO2_MESSAGES)
        assert detect_profile(attrs) is CapabilityProfile.INDEXED_DUAL

    def test_two_vibrators_is_legacy(self):
        attrs = parse_device_messages(ORIGINAL_MESSAGES)
        assert detect_profile(attrs) is CapabilityProfile.LEGACY

    def test_raw_device_messages_are_accepted(self):
        """パース前の dict（ActuatorType キー）でも判定できる"""
        assert detect_profile(NEO2_MESSAGES) is CapabilityProfile.INDEXED_DUAL

    def test_constrict_with_two_vibrators_is_legacy(self):
        attrs = {"ScalarCmd": [
            ActuatorDescriptor("Vibrate", 0),
            ActuatorDescriptor("Vibrate", 1),
            ActuatorDescriptor("Constrict", 2),
        ]}
        assert detect_profile(attrs) is CapabilityProfile.LEGACY

    def test_single_vibrator_without_constrict_defaults_to_legacy(self):
        attrs = {"ScalarCmd": [ActuatorDescriptor("Vibrate", 0)]}
        assert detect_profile(attrs) is CapabilityProfile.LEGACY

    def test_descriptor_kind_is_case_insensitive(self):
        attrs = {"ScalarCmd": [{"kind": "vibration"}, {"kind": "CONSTRICT"}]}
        assert detect_profile(attrs) is CapabilityProfile.INDEXED_DUAL

    @pytest.mark.parametrize("attrs", [
        None,
        {},
        [],
        "ScalarCmd",
        {"ScalarCmd": "Vibrate"},
        {"ScalarCmd": [None]},
        {"ScalarCmd": [{"StepCount": 20}]},
        {"ScalarCmd": [{"ActuatorType": 3}]},
    ])
    def test_missing_or_malformed_defaults_to_legacy(self, attrs):
        """壊れた入力でも例外を出さず Legacy"""
        assert detect_profile(attrs) is CapabilityProfile.LEGACY

    def test_pure_function(self):
        attrs = parse_device_messages(NEO2_MESSAGES)
        results = {detect_profile(attrs) for _ in range(10)}
        assert results == {CapabilityProfile.INDEXED_DUAL}

    def test_only_indexed_dual_supports_independent(self):
        assert CapabilityProfile.INDEXED_DUAL.supports_independent
        assert not CapabilityProfile.LEGACY.supports_independent


class TestParseDeviceMessages:

    def test_scalar_descriptors_keep_position_as_index(self):
        attrs = parse_device_messages(NEO2_MESSAGES)
        assert attrs["ScalarCmd"] == [
            ActuatorDescriptor("Vibrate", 0, step_count=20, feature="Vibrator"),
            ActuatorDescriptor("Constrict", 1, step_count=5, feature="Suction"),
        ]

    def test_commands_without_attribute_list_are_dropped(self):
        assert "StopDeviceCmd" not in parse_device_messages(NEO2_MESSAGES)

    def test_linear_without_actuator_type_is_position(self):
        attrs = parse_device_messages({"LinearCmd": [{"StepCount": 100}]})
        assert attrs["LinearCmd"][0].kind == "Position"

    def test_non_dict_input_yields_empty(self):
        assert parse_device_messages(None) == {}
        assert parse_device_messages([1, 2]) == {}
