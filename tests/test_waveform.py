"""
waveform.py の単体テスト

外部依存ゼロ：デバイスもスケジューラも使わず、生成結果だけを検証する。
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pytest

import waveform
from errors import InvalidParameters
from waveform import Pattern, Sample


# =========================================================
# ramp
# =========================================================

class TestRamp:

    def test_sample_count_equals_steps(self):
        """steps 個のサンプルを返す"""
        for steps in (1, 2, 20, 137, 1000):
            assert len(waveform.ramp(1.0, 1000, steps)) == steps

    def test_monotone_non_decreasing(self):
        """強度は単調非減少"""
        for target in np.linspace(0.0, 1.0, 11):
            levels = [s.intensity for s in waveform.ramp(float(target), 1000, 20)]
            assert levels == sorted(levels)

    def test_starts_at_zero(self):
        assert waveform.ramp(0.7, 1000, 20)[0].intensity == 0.0

    def test_last_sample_stops_short_of_target(self):
        """最後のサンプルは target × (steps-1)/steps（target には届かない）"""
        for steps in (1, 5, 20, 333):
            samples = waveform.ramp(0.8, 1000, steps)
            assert samples[-1].intensity == pytest.approx(0.8 * (steps - 1) / steps)

    def test_hold_is_even_split(self):
        """各サンプルの保持時間は duration / steps"""
        samples = waveform.ramp(1.0, 1000, 20)
        assert all(s.hold_ms == pytest.approx(50.0) for s in samples)
        assert waveform.total_duration(samples) == pytest.approx(1000.0)

    def test_fraction_per_step(self):
        samples = waveform.ramp(1.0, 1000, 20)
        assert [s.intensity for s in samples] == pytest.approx([i / 20 for i in range(20)])


# =========================================================
# pulse
# =========================================================

class TestPulse:

    def test_sample_count(self):
        """2 × floor(duration / (2 × interval)) 個"""
        for total in (0, 999, 1000, 1001, 2500, 30000):
            for interval in (100, 250, 500, 2000):
                expected = 2 * (total // (2 * interval))
                assert len(waveform.pulse(0.5, total, interval)) == expected

    def test_alternates_target_and_zero(self):
        samples = waveform.pulse(0.6, 2000, 250)
        assert [s.intensity for s in samples[0::2]] == [0.6] * 4
        assert [s.intensity for s in samples[1::2]] == [0.0] * 4
        assert all(s.hold_ms == 250 for s in samples)

    def test_remainder_is_truncated(self):
        """端数の半周期は捨てる"""
        samples = waveform.pulse(1.0, 1700, 500)
        assert len(samples) == 2
        assert waveform.total_duration(samples) == 1000

    def test_too_short_yields_empty(self):
        assert waveform.pulse(1.0, 900, 500) == []


# =========================================================
# wave
# =========================================================

class TestWave:

    def test_sample_count(self):
        """2 × (steps + 1) 個"""
        for steps in (1, 3, 20, 100):
            assert len(waveform.wave(1.0, 1000, steps)) == 2 * (steps + 1)

    def test_palindrome_with_peak_at_target(self):
        samples = waveform.wave(0.9, 2000, 20)
        levels = [s.intensity for s in samples]
        assert levels == levels[::-1]
        assert max(levels) == pytest.approx(0.9)
        assert levels[0] == 0.0 and levels[-1] == 0.0

    def test_rising_half_is_monotone(self):
        levels = [s.intensity for s in waveform.wave(1.0, 1000, 20)]
        rising = levels[:21]
        assert rising == sorted(rising)

    def test_hold_per_sample(self):
        """保持時間は duration / (2 × steps)"""
        samples = waveform.wave(1.0, 2000, 20)
        assert all(s.hold_ms == pytest.approx(50.0) for s in samples)


# =========================================================
# hold / generate
# =========================================================

class TestGenerate:

    def test_hold_is_single_sample(self):
        assert waveform.generate(Pattern.HOLD, 0.4, 1500) == [Sample(0.4, 1500)]

    def test_dispatches_by_pattern_name(self):
        assert len(waveform.generate("ramp", 1.0, 1000, 10)) == 10
        assert len(waveform.generate("pulse", 1.0, 1000, 250)) == 4
        assert len(waveform.generate("wave", 1.0, 1000, 5)) == 12

    def test_deterministic(self):
        assert waveform.generate(Pattern.WAVE, 0.5, 1000, 7) == waveform.generate(Pattern.WAVE, 0.5, 1000, 7)

    @pytest.mark.parametrize("pattern", [Pattern.RAMP, Pattern.WAVE])
    def test_zero_steps_rejected(self, pattern):
        """steps == 0 はゼロ除算の前に InvalidParameters"""
        with pytest.raises(InvalidParameters):
            waveform.generate(pattern, 1.0, 1000, 0)

    def test_missing_steps_rejected(self):
        with pytest.raises(InvalidParameters):
            waveform.generate(Pattern.RAMP, 1.0, 1000)

    def test_zero_pulse_interval_rejected(self):
        with pytest.raises(InvalidParameters):
            waveform.generate(Pattern.PULSE, 1.0, 1000, 0)

    @pytest.mark.parametrize("target", [-0.1, 1.01, 5.0])
    def test_intensity_out_of_range_rejected(self, target):
        with pytest.raises(InvalidParameters):
            waveform.generate(Pattern.HOLD, target, 1000)

    def test_intensities_stay_within_unit_interval(self):
        """どのパターンでも強度は [0, target]"""
        for target in np.linspace(0.0, 1.0, 21):
            t = float(target)
            for samples in (
                waveform.generate(Pattern.RAMP, t, 1000, 20),
                waveform.generate(Pattern.PULSE, t, 1000, 100),
                waveform.generate(Pattern.WAVE, t, 1000, 20),
            ):
                assert all(0.0 <= s.intensity <= t + 1e-12 for s in samples)
