"""
Infrastructure layer - remote catalog access.

Contains the catalog client contract, its HTTP implementation and the
fault-tolerance helpers in front of it.
"""
