"""
objrecon: Object Reconstruction with Occlusion Repair

Reconstructs surface meshes of tabletop objects from partial point-cloud
scans: frame accumulation, support-plane removal, object candidate
clustering, surface meshing and occlusion hole filling.
"""

__version__ = "0.1.0"
