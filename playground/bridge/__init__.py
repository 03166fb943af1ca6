"""Compute bridge: serialized, supersedable calls into one compute engine."""
