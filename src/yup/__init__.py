"""Y'UP progression engine: trick XP, levels, specializations and quest trees."""
