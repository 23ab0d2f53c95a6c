"""
Motion matching core: corpus building, trajectory search, pose scoring and blending.
"""
