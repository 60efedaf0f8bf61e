from cloudstack_node.db.tables.state import CollectorStateRow

__all__ = ["CollectorStateRow"]
