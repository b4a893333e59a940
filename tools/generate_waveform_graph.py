#!/usr/bin/env python3
"""
波形パターンのグラフを生成するスクリプト
ramp / pulse / wave / hold と Combo の同期モードを階段グラフで可視化
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

import matplotlib
matplotlib.use('Agg')  # GUI不要、ファイル出力のみ
matplotlib.rcParams['axes.unicode_minus'] = False
import matplotlib.pyplot as plt
import numpy as np
import waveform
from waveform import Pattern
from settings import settings

DURATION_MS = 2000
TARGET = 0.8

# 出力ディレクトリを準備
script_dir = os.path.dirname(__file__)
output_dir = os.path.join(script_dir, 'graphs')
os.makedirs(output_dir, exist_ok=True)


def to_steps(samples):
    """サンプル列を (時刻, 強度) の階段に変換する。"""
    times = np.concatenate([[0.0], np.cumsum([s.hold_ms for s in samples])])
    levels = [s.intensity for s in samples]
    return times, levels + levels[-1:]


# ========== パターン一覧 ==========

patterns = [
    ('Ramp (steps=20)', waveform.generate(Pattern.RAMP, TARGET, DURATION_MS, 20)),
    (f'Pulse (interval={settings.patterns.combo_pulse_interval_ms}ms)',
     waveform.generate(Pattern.PULSE, TARGET, DURATION_MS, settings.patterns.combo_pulse_interval_ms)),
    (f'Wave (steps={settings.patterns.wave_steps})',
     waveform.generate(Pattern.WAVE, TARGET, DURATION_MS, settings.patterns.wave_steps)),
    ('Hold', waveform.generate(Pattern.HOLD, TARGET, DURATION_MS)),
]

fig, axes = plt.subplots(len(patterns), 1, figsize=(10, 9), sharex=True)

for ax, (title, samples) in zip(axes, patterns):
    times, levels = to_steps(samples)
    ax.step(times, levels, where='post', linewidth=2.0)
    ax.set_title(f'{title} - {len(samples)} samples, {waveform.total_duration(samples):.0f}ms',
                 fontsize=11, fontweight='bold')
    ax.set_ylim(-0.05, 1.05)
    ax.grid(True, alpha=0.3, linestyle='--')

axes[-1].set_xlabel('Time (ms)', fontsize=12, fontweight='bold')
plt.tight_layout()

output_file = os.path.join(output_dir, 'waveform_patterns.png')
plt.savefig(output_file, dpi=150, bbox_inches='tight')
print(f"✓ Graph saved: {output_file}")

# ========== Combo 同期モード ==========

fractions = waveform.generate(Pattern.RAMP, 1.0, DURATION_MS, 20)
times, levels = to_steps(fractions)
levels = np.array(levels)

fig, ax = plt.subplots(figsize=(10, 5))
ax.step(times, levels * TARGET, where='post', linewidth=2.5, label='Vibration')
ax.step(times, levels * TARGET, where='post', linestyle='--', label='Vacuum (synchronized)')
ax.step(times, (1 - levels) * TARGET, where='post', linestyle=':', label='Vacuum (alternating)')
ax.set_xlabel('Time (ms)', fontsize=12, fontweight='bold')
ax.set_ylabel('Intensity', fontsize=12, fontweight='bold')
ax.set_title('Combo Coordination Modes', fontsize=13, fontweight='bold')
ax.set_ylim(-0.05, 1.05)
ax.grid(True, alpha=0.3, linestyle='--')
ax.legend(loc='upper left', fontsize=10)
plt.tight_layout()

output_file = os.path.join(output_dir, 'combo_modes.png')
plt.savefig(output_file, dpi=150, bbox_inches='tight')
print(f"✓ Graph saved: {output_file}")

# ========== テーブル出力 ==========
print("\n=== Waveform Sample Table ===")
for title, samples in patterns:
    print(f"\n{title}")
    print(f"{'#':<4} {'Intensity':<12} {'Hold(ms)':<10}")
    print("-" * 28)
    for i, s in enumerate(samples[:12]):
        print(f"{i:<4} {s.intensity:<12.3f} {s.hold_ms:<10.1f}")
    if len(samples) > 12:
        print(f"... ({len(samples) - 12} more)")
