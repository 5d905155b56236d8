from ._repertoire_graph import build_graph, repertoire_graph, set_group_vector, set_people_vector

__all__ = ["build_graph", "repertoire_graph", "set_group_vector", "set_people_vector"]
