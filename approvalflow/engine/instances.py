# Instance Repository for the reference engine
# Handles the runtime side of process instances (create, read, list, remove)

import logging
from typing import Any, Dict, Iterable, List, Optional, TYPE_CHECKING

from rdflib import Literal, RDF, URIRef

from approvalflow.models import ProcessInstance
from .base import BaseStorageService, INST, PROC, id_sort_key, now_iso
from .variables import read_variables, remove_variables, write_variables

if TYPE_CHECKING:
    from rdflib import Graph

logger = logging.getLogger(__name__)


class InstanceRepository:
    """
    Repository for running process instances.

    Handles:
    - Creating instances when a definition is started
    - Retrieving and listing running instances
    - Instance-scoped variables
    - Removing instances when they end or are deleted

    Only running instances live here; the history repository keeps the
    record of every instance ever started.
    """

    def __init__(self, base_storage: BaseStorageService):
        """
        Initialize the instance repository.

        Args:
            base_storage: The base storage service providing graph access
        """
        self._storage = base_storage

    @property
    def _graph(self) -> "Graph":
        """Get the instances graph."""
        return self._storage.instances_graph

    # ==================== Instance Creation ====================

    def create(
        self,
        definition_id: str,
        definition_key: str,
        business_key: Optional[str] = None,
        literals: Optional[Dict[str, Literal]] = None,
    ) -> ProcessInstance:
        """
        Create a running instance of a definition.

        Args:
            definition_id: Id of the deployed definition version
            definition_key: Key of the process definition
            business_key: Optional business key
            literals: Optional initial instance variables, already encoded

        Returns:
            The created instance
        """
        instance_id = self._storage.next_id()
        instance_uri = INST[instance_id]
        started_at = now_iso()

        self._graph.add((instance_uri, RDF.type, INST.ProcessInstance))
        self._graph.add((instance_uri, INST.definitionId, Literal(definition_id)))
        self._graph.add((instance_uri, INST.definitionKey, Literal(definition_key)))
        self._graph.add((instance_uri, INST.startedAt, Literal(started_at)))
        if business_key is not None:
            self._graph.add((instance_uri, INST.businessKey, Literal(business_key)))

        if literals:
            write_variables(self._graph, instance_uri, instance_id, literals)

        self._storage.save_instances()

        logger.info(f"Created instance {instance_id} of {definition_key}")

        return ProcessInstance(
            id=instance_id,
            definition_key=definition_key,
            definition_id=definition_id,
            business_key=business_key,
            started_at=started_at,
        )

    # ==================== Instance Retrieval ====================

    def get(self, instance_id: str) -> Optional[ProcessInstance]:
        """
        Get a running instance by ID.

        Args:
            instance_id: The instance ID

        Returns:
            The instance, or None if it is not running
        """
        instance_uri = INST[instance_id]

        if (instance_uri, RDF.type, INST.ProcessInstance) not in self._graph:
            return None

        business_key = self._graph.value(instance_uri, INST.businessKey)
        definition_id = self._graph.value(instance_uri, INST.definitionId)
        started_at = self._graph.value(instance_uri, INST.startedAt)

        return ProcessInstance(
            id=instance_id,
            definition_key=str(self._graph.value(instance_uri, INST.definitionKey)),
            definition_id=str(definition_id) if definition_id is not None else None,
            business_key=str(business_key) if business_key is not None else None,
            started_at=str(started_at) if started_at is not None else None,
        )

    def exists(self, instance_id: str) -> bool:
        """Check if an instance is running."""
        return (INST[instance_id], RDF.type, INST.ProcessInstance) in self._graph

    def list(
        self,
        instance_id: Optional[str] = None,
        instance_ids: Optional[Iterable[str]] = None,
        definition_key: Optional[str] = None,
    ) -> List[ProcessInstance]:
        """
        List running instances with optional filtering.

        Args:
            instance_id: Filter by a single instance ID
            instance_ids: Filter by a set of instance IDs
            definition_key: Filter by definition key

        Returns:
            Matching instances in id order
        """
        wanted = set(instance_ids) if instance_ids is not None else None
        instances = []

        for instance_uri in self._graph.subjects(RDF.type, INST.ProcessInstance):
            current_id = str(instance_uri)[len(str(INST)):]

            if instance_id is not None and current_id != instance_id:
                continue
            if wanted is not None and current_id not in wanted:
                continue
            if definition_key is not None:
                key = self._graph.value(instance_uri, INST.definitionKey)
                if key is None or str(key) != definition_key:
                    continue

            instance = self.get(current_id)
            if instance:
                instances.append(instance)

        return sorted(instances, key=lambda instance: id_sort_key(instance.id))

    # ==================== Variables ====================

    def set_variables(self, instance_id: str, literals: Dict[str, Literal]) -> None:
        """Upsert encoded instance-scoped variables."""
        write_variables(self._graph, INST[instance_id], instance_id, literals)
        self._storage.save_instances()

    def get_variables(self, instance_id: str) -> Dict[str, Any]:
        """Get instance-scoped variables."""
        return read_variables(self._graph, INST[instance_id])

    def definition_uri(self, instance_id: str) -> Optional[URIRef]:
        """Stored definition id of an instance as a definitions-graph URI."""
        definition_id = self._graph.value(INST[instance_id], INST.definitionId)
        return PROC[str(definition_id)] if definition_id is not None else None

    # ==================== Removal ====================

    def remove(self, instance_id: str) -> None:
        """Remove a running instance and its variables."""
        instance_uri = INST[instance_id]
        remove_variables(self._graph, instance_uri)
        self._graph.remove((instance_uri, None, None))
        self._storage.save_instances()

        logger.debug(f"Removed runtime state of instance {instance_id}")
