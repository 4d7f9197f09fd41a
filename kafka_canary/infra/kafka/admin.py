"""Kafka Admin façade built on kafka-python."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

from kafka.admin import ConfigResource, ConfigResourceType, KafkaAdminClient, NewTopic  # kafka-python
from kafka.errors import NoError, TopicAlreadyExistsError, UnknownTopicOrPartitionError, for_code

from kafka_canary.core.config import Settings
from kafka_canary.core.exceptions import BrokerAdminError, TopicDoesNotExistError
from kafka_canary.domain.models.topic import PartitionMetadata, TopicMetadata, TopicSpec
from kafka_canary.infra.kafka.connection import client_kwargs, translate_error

logger = logging.getLogger(__name__)


def _raise_for_code(code: int, topic: str, message: str | None = None) -> None:
    error_type = for_code(code)
    if error_type is NoError:
        return
    if error_type is UnknownTopicOrPartitionError:
        raise TopicDoesNotExistError(topic)
    raise translate_error(error_type(message or topic), topic)


class KafkaAdminFacade:
    """Encapsulates the admin operations the canary needs against a Kafka cluster.

    Every kafka-python error is translated into the canary taxonomy:
    transient connectivity problems become ``TransientNetworkError``, a missing
    topic becomes ``TopicDoesNotExistError`` and the rest ``BrokerAdminError``.
    """

    def __init__(self, client: KafkaAdminClient) -> None:
        self._client = client

    @classmethod
    def connect(cls, cfg: Settings | None = None) -> "KafkaAdminFacade":
        """Open a new admin connection (bootstraps against the cluster)."""
        try:
            client = KafkaAdminClient(**client_kwargs(cfg))
        except Exception as exc:
            raise translate_error(exc) from exc
        return cls(client)

    # ---------- Topic metadata ---------------------------------------------

    def get_topic(self, topic: str, include_auth: bool = False) -> TopicMetadata:
        """Describe *topic*.

        Raises
        ------
        TopicDoesNotExistError
            If the cluster does not know the topic.
        TransientNetworkError
            If the broker could not be reached.
        """
        try:
            described = self._client.describe_topics([topic])
        except Exception as exc:
            raise translate_error(exc, topic) from exc

        entry = next((t for t in described if t.get("topic") == topic), None)
        if entry is None:
            raise TopicDoesNotExistError(topic)
        _raise_for_code(entry.get("error_code", 0), topic)

        partitions = [
            PartitionMetadata(
                id=p["partition"],
                leader=p.get("leader"),
                replicas=list(p.get("replicas", [])),
                isr=list(p.get("isr", [])),
            )
            for p in entry.get("partitions", [])
        ]
        auth_ops = entry.get("topic_authorized_operations") if include_auth else None
        return TopicMetadata(
            name=topic,
            partitions=partitions,
            authorized_operations=_auth_ops(auth_ops),
        )

    # ---------- Topic CRUD -------------------------------------------------

    def create_topic(self, spec: TopicSpec) -> None:
        """Create a new topic; an existing topic with that name is not an error."""
        new_topic = NewTopic(
            name=spec.name,
            num_partitions=spec.partitions,
            replication_factor=spec.replication_factor,
            topic_configs=dict(spec.configs),
        )
        try:
            self._client.create_topics([new_topic])
        except TopicAlreadyExistsError:
            # idempotent: someone else created it between describe and create
            logger.info("Topic %s already exists", spec.name)
            return
        except Exception as exc:
            raise translate_error(exc, spec.name) from exc

    # ---------- Topic configuration ----------------------------------------

    def describe_topic_config(self, topic: str) -> Dict[str, str]:
        """Return the current configuration values of *topic*."""
        try:
            result = self._client.describe_configs(
                [ConfigResource(ConfigResourceType.TOPIC, topic)]
            )
        except Exception as exc:
            raise translate_error(exc, topic) from exc

        responses = result if isinstance(result, list) else [result]
        current: Dict[str, str] = {}
        for response in responses:
            for resource in response.resources:
                error_code, error_message = resource[0], resource[1]
                _raise_for_code(error_code, topic, error_message)
                # config entries start with (name, value, ...) in every version
                for config_entry in resource[4]:
                    current[config_entry[0]] = config_entry[1]
        return current

    def update_topic_config(
        self,
        topic: str,
        entries: Mapping[str, str],
        validate_only: bool = False,
    ) -> Dict[str, str]:
        """Overwrite *topic*'s configuration with *entries*.

        Returns the entries whose desired value differs from the broker's
        current one. With ``validate_only`` that difference is computed but
        nothing is altered.
        """
        desired = {str(k): str(v) for k, v in entries.items()}
        current = self.describe_topic_config(topic)
        changed = {k: v for k, v in desired.items() if current.get(k) != v}
        if validate_only:
            return changed

        try:
            response = self._client.alter_configs(
                [ConfigResource(ConfigResourceType.TOPIC, topic, configs=desired)]
            )
        except Exception as exc:
            raise translate_error(exc, topic) from exc

        for resource in getattr(response, "resources", []):
            _raise_for_code(resource[0], topic, resource[1])
        logger.info("Applied %d config entries to topic %s (%d changed)",
                    len(desired), topic, len(changed))
        return changed

    # ---------- Lifecycle --------------------------------------------------

    def close(self) -> None:
        try:
            self._client.close()
        except Exception as exc:
            raise BrokerAdminError(f"failed to close admin client: {exc!r}") from exc


def _auth_ops(raw: Any) -> list[str] | None:
    if raw is None:
        return None
    if isinstance(raw, (list, set, tuple)):
        return sorted(str(op) for op in raw)
    return [str(raw)]
