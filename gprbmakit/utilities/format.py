import numpy as np
import pandas as pd


def fancy_format(num):
  if not isinstance(num, (int, float, np.number)):
    if num is None:
      return "N/A"
    return str(num) + "-->?(type=" + str(type(num)) + ")"

  if pd.isna(num):
    return "N/A"
  if np.isinf(num):
    return "∞" if num > 0 else "-∞"
  if num == 0:
    return '0.00'
  if 1 > abs(num) > 0:
    return '{:.4f}'.format(num)
  num = float('{:.3g}'.format(num))
  magnitude = 0
  while abs(num) >= 1000 and abs(num) > 1e-6:
    magnitude += 1
    num /= 1000.0
  if magnitude <= 11:
    magletter = ['', 'K', 'M', 'B', 'T', 'Q', 'Qi', 'S', 'Sp', 'O', 'N', 'D'][magnitude]
    return '{}{}'.format('{:f}'.format(num).rstrip('0').rstrip('.'), magletter)
  else:
    return '{:e}'.format(num)


def dig4_fancy_format(num):
  if num is None or pd.isna(num):
    return "N/A"
  return '{:.4f}'.format(num)


def format_predictors(predictors) -> str:
  return ", ".join(predictors)
