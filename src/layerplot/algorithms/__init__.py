"""Statistics computed by the caller and attached to layers as derived data.

Pure pandas/numpy reference implementations: per-group means
(group_summary) and bivariate normal confidence ellipses
(confidence_ellipse).
"""
