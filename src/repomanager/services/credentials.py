"""Provisioning of the default image pull secret."""

from __future__ import annotations

from kubernetes_asyncio.client import V1ObjectMeta, V1Secret
from structlog.stdlib import BoundLogger

from ..constants import DEFAULT_PULL_SECRET_DATA, DEFAULT_PULL_SECRET_NAME
from ..exceptions import KubernetesError
from ..models.v1.pulp import Pulp
from ..storage.kubernetes.creator import SecretStorage
from ..timeout import Timeout
from .recorder import EventRecorder

__all__ = ["DefaultCredentialProvisioner"]


class DefaultCredentialProvisioner:
    """Ensure the default pull secret exists in a namespace.

    The tier builders reference a pull secret with a fixed name. If the
    cluster administrator has not provided one, a placeholder is created so
    that the workloads can start. An existing secret is never modified.

    Parameters
    ----------
    storage
        Storage layer for secrets.
    recorder
        Event recorder used to note the creation of the secret.
    logger
        Logger to use.
    """

    def __init__(
        self,
        storage: SecretStorage,
        recorder: EventRecorder,
        logger: BoundLogger,
    ) -> None:
        self._storage = storage
        self._recorder = recorder
        self._logger = logger

    async def ensure(
        self, namespace: str, timeout: Timeout, owner: Pulp
    ) -> bool:
        """Create the default pull secret if it does not exist.

        Parameters
        ----------
        namespace
            Namespace in which the secret must exist.
        timeout
            Timeout on the whole operation.
        owner
            ``Pulp`` on whose behalf the secret is needed, used as the
            subject of the audit event.

        Returns
        -------
        bool
            `True` if the secret was created, `False` if it already existed.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server other than
            a conflict on creation.
        """
        name = DEFAULT_PULL_SECRET_NAME
        secret = await self._storage.read(name, namespace, timeout)
        if secret:
            return False

        body = V1Secret(
            metadata=V1ObjectMeta(name=name, namespace=namespace),
            string_data=dict(DEFAULT_PULL_SECRET_DATA),
        )
        try:
            await self._storage.create(namespace, body, timeout)
        except KubernetesError as e:
            if e.status == 409:
                msg = "Default pull secret created concurrently"
                self._logger.debug(msg, secret=name)
                return False
            raise
        self._logger.info("Created default pull secret", secret=name)
        await self._recorder.normal(
            owner,
            "DefaultSecretCreated",
            f"Created placeholder pull secret {name}",
            timeout,
        )
        return True
