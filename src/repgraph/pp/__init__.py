from ._shared_repertoire import shared_matrix, shared_repertoire

__all__ = ["shared_matrix", "shared_repertoire"]
