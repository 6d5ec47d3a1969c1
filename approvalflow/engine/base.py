# Base Storage Service for the reference engine
# Handles RDF graph management, persistence and id allocation

import os
import logging
from datetime import datetime
from typing import Optional, Tuple
from rdflib import Graph, Literal, Namespace

logger = logging.getLogger(__name__)

# RDF Namespaces - shared across all engine modules
BPMN = Namespace("http://dkm.fbk.eu/index.php/BPMN2_Ontology#")
PROC = Namespace("http://example.org/process/")
INST = Namespace("http://example.org/instance/")
TASK = Namespace("http://example.org/task/")
VAR = Namespace("http://example.org/variables/")
HIST = Namespace("http://example.org/history/")
META = Namespace("http://example.org/meta/")

GRAPH_FILES = {
    "definitions": "definitions.ttl",
    "instances": "instances.ttl",
    "tasks": "tasks.ttl",
    "history": "history.ttl",
}


def now_iso() -> str:
    """Current local time as an ISO-8601 string."""
    return datetime.now().isoformat()


def id_sort_key(value: Optional[str]) -> Tuple[int, str]:
    """
    Ordering key for engine ids.

    Ids are decimal strings from a growing sequence, so shorter ids sort
    before longer ones and equal lengths sort lexically.
    """
    value = value or ""
    return len(value), value


class BaseStorageService:
    """
    Base class for RDF graph management and persistence.

    Manages four separate RDF graphs:
    - definitions_graph: Deployed process definitions and the id sequence
    - instances_graph: Running process instances and their variables
    - tasks_graph: Open user tasks, identity links and task-local variables
    - history_graph: Historic tasks, instances and variables

    Each graph is persisted to its own Turtle file. With no storage path the
    graphs live in memory only.
    """

    def __init__(self, storage_path: Optional[str] = None, persist: bool = True):
        """
        Initialize the base storage service.

        Args:
            storage_path: Directory path for storing RDF data files, or None
            persist: Whether graphs are written to disk after changes
        """
        self.storage_path = storage_path
        self.persist = persist and storage_path is not None

        self._definitions_graph = Graph()
        self._instances_graph = Graph()
        self._tasks_graph = Graph()
        self._history_graph = Graph()

        if self.storage_path:
            os.makedirs(self.storage_path, exist_ok=True)
            self._load_all_graphs()

        logger.info(f"Initialized engine storage at {storage_path or '<memory>'}")

    def _load_all_graphs(self) -> None:
        """Load all graphs from their respective files."""
        self._definitions_graph = self._load_graph(GRAPH_FILES["definitions"])
        self._instances_graph = self._load_graph(GRAPH_FILES["instances"])
        self._tasks_graph = self._load_graph(GRAPH_FILES["tasks"])
        self._history_graph = self._load_graph(GRAPH_FILES["history"])

    def _load_graph(self, filename: str) -> Graph:
        """
        Load a graph from file if it exists.

        Args:
            filename: Name of the turtle file to load

        Returns:
            Graph containing the loaded data, or empty Graph if file doesn't exist
        """
        graph = Graph()
        filepath = os.path.join(self.storage_path, filename)

        if os.path.exists(filepath):
            try:
                graph.parse(filepath, format="turtle")
                logger.info(f"Loaded graph from {filepath} ({len(graph)} triples)")
            except Exception as e:
                logger.warning(f"Failed to load {filepath}: {e}")
                graph = Graph()

        return graph

    def _save_graph(self, graph: Graph, filename: str) -> None:
        if not self.persist:
            return
        filepath = os.path.join(self.storage_path, filename)
        graph.serialize(filepath, format="turtle")
        logger.debug(f"Saved graph to {filepath} ({len(graph)} triples)")

    def save_definitions(self) -> None:
        """Save the definitions graph to disk."""
        self._save_graph(self._definitions_graph, GRAPH_FILES["definitions"])

    def save_instances(self) -> None:
        """Save the instances graph to disk."""
        self._save_graph(self._instances_graph, GRAPH_FILES["instances"])

    def save_tasks(self) -> None:
        """Save the tasks graph to disk."""
        self._save_graph(self._tasks_graph, GRAPH_FILES["tasks"])

    def save_history(self) -> None:
        """Save the history graph to disk."""
        self._save_graph(self._history_graph, GRAPH_FILES["history"])

    def save_all(self) -> None:
        """Save all graphs to disk."""
        self.save_definitions()
        self.save_instances()
        self.save_tasks()
        self.save_history()

    # ==================== Id Allocation ====================

    def next_id(self) -> str:
        """
        Allocate the next engine id.

        The sequence lives in the definitions graph so it survives restarts.
        """
        current = self._definitions_graph.value(META.idSequence, META.value)
        next_value = int(current) + 1 if current is not None else 1
        self._definitions_graph.set((META.idSequence, META.value, Literal(next_value)))
        self.save_definitions()
        return str(next_value)

    # Graph properties for controlled access

    @property
    def definitions_graph(self) -> Graph:
        """Get the process definitions graph."""
        return self._definitions_graph

    @property
    def instances_graph(self) -> Graph:
        """Get the process instances graph."""
        return self._instances_graph

    @property
    def tasks_graph(self) -> Graph:
        """Get the tasks graph."""
        return self._tasks_graph

    @property
    def history_graph(self) -> Graph:
        """Get the history graph."""
        return self._history_graph

    def clear_all(self) -> None:
        """
        Clear all graphs and delete persisted files.

        USE WITH CAUTION - this deletes all data!
        """
        self._definitions_graph = Graph()
        self._instances_graph = Graph()
        self._tasks_graph = Graph()
        self._history_graph = Graph()

        if self.storage_path:
            for filename in GRAPH_FILES.values():
                filepath = os.path.join(self.storage_path, filename)
                if os.path.exists(filepath):
                    os.remove(filepath)
                    logger.info(f"Deleted {filepath}")

        logger.warning("Cleared all engine storage data")

    def get_stats(self) -> dict:
        """
        Get statistics about the stored data.

        Returns:
            Dictionary with triple counts for each graph
        """
        return {
            "definitions_triples": len(self._definitions_graph),
            "instances_triples": len(self._instances_graph),
            "tasks_triples": len(self._tasks_graph),
            "history_triples": len(self._history_graph),
            "total_triples": (
                len(self._definitions_graph)
                + len(self._instances_graph)
                + len(self._tasks_graph)
                + len(self._history_graph)
            ),
            "storage_path": self.storage_path,
        }
