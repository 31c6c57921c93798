"""
Constants for cycle projection and pregnancy dating.
"""

# Accepted cycle lengths (days between two period starts) for pregnancy dating
MIN_CYCLE_DURATION = 22
MAX_CYCLE_DURATION = 45

# Ovulation precedes the next period by the luteal phase
LUTEAL_PHASE_DAYS = 14
# Upper bound on the half-cycle estimate when no later period is known
MAX_OVULATION_OFFSET_DAYS = 14

# Fertility window around ovulation: [ovulation - 4, ovulation + 3]
FERTILITY_DAYS_BEFORE_OVULATION = 4
FERTILITY_DAYS_AFTER_OVULATION = 3

# Safety bound on forward projection, about a year of cycles
MAX_PROJECTED_CYCLES = 12

# Due date counted from ovulation (280 days from LMP on a 28-day cycle)
GESTATION_DAYS_FROM_OVULATION = 265

DAYS_PER_WEEK = 7

# Synthetic id prefixes for calculated events
CALCULATED_OVULATION_ID = "calculated-ovulation-{}"
CALCULATED_FERTILITY_ID = "calculated-fertility-{}"
PREDICTED_CYCLE_ID = "predicted-cycle-{}"
PREDICTED_OVULATION_ID = "predicted-ovulation-{}"
PREDICTED_FERTILITY_ID = "predicted-fertility-{}"

# Intensity scale of symptom and mood details
MIN_DETAIL_INTENSITY = 0
MAX_DETAIL_INTENSITY = 3
