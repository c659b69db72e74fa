import numpy as np
import pandas as pd

from config import DAILY_PERIOD


def square_wave(period: int = DAILY_PERIOD, on_from: float = 1 / 3, on_to: float = 5 / 6) -> np.ndarray:
	"""One day of a 0/1 pattern: 1 between fractions on_from and on_to of the day."""
	pos = np.arange(period) / float(period)
	return ((pos >= on_from) & (pos < on_to)).astype(float)


def make_load_table(
	n_days: int = 22,
	period: int = DAILY_PERIOD,
	start: str = '2023-01-02',
	level: float = 500.0,
	daily_amplitude: float = 100.0,
	weekly_amplitude: float = 50.0,
	trend_slope: float = 0.0,
	noise: float = 0.0,
	pattern: str = 'sine',
	seed: int = 42,
) -> pd.DataFrame:
	"""
	Synthetic electricity load with daily and weekly seasonality.

	- pattern 'sine': smooth daily profile, 'square': square-wave daily profile
	- weekly effect lowers the weekend (week_num 6 and 7) by weekly_amplitude
	- trend_slope is added per sample, noise is Gaussian sd
	Columns: date, date_time, value, week_num (1 = Monday .. 7 = Sunday).
	"""
	rng = np.random.default_rng(seed)
	n = n_days * period
	step = pd.Timedelta(days=1) / period
	date_time = pd.date_range(start=pd.Timestamp(start), periods=n, freq=step)
	t = np.arange(n)

	if pattern == 'square':
		daily = np.tile(square_wave(period), n_days) * 2.0 - 1.0
	elif pattern == 'sine':
		daily = np.sin(2 * np.pi * t / period - np.pi / 2)
	else:
		raise ValueError(f"Unknown pattern {pattern!r}")

	week_num = date_time.dayofweek.to_numpy() + 1
	weekend = (week_num >= 6).astype(float)
	values = (
		level
		+ daily_amplitude * daily
		- weekly_amplitude * weekend
		+ trend_slope * t
		+ (rng.normal(0, noise, n) if noise > 0 else 0.0)
	)

	return pd.DataFrame({
		'date': date_time.normalize().date,
		'date_time': date_time,
		'value': np.round(values, 4),
		'week_num': week_num,
	})
