"""DataBinder facade: fetch from linked datasources, whole or in batches."""

from typing import TYPE_CHECKING

import structlog

from databinder.core.batching import BatchIterator
from databinder.core.linker import DEFAULT_METHOD_NAME, Linker
from databinder.fetch.errors import FetchError, InvalidConfigError, wrap_unexpected
from databinder.fetch.models import FetchOptions, ResponseFormat
from databinder.observability.telemetry import NullTelemetry, Telemetry


if TYPE_CHECKING:
    from databinder.settings.app import AppSettings


logger = structlog.get_logger()

DEFAULT_BATCH_SIZE = 100


class DataBinder:
    """Entry point over a ``Linker``.

    Provides:
    - ``fetch_all``: one result per datasource, or a batch iterator
    - ``fetch_from_datasource``: a single datasource method call
    - ``iterate``: batches across datasources in id order
    """

    def __init__(
        self,
        linker: Linker,
        response_format: ResponseFormat = ResponseFormat.FULL,
        default_batch_size: int = DEFAULT_BATCH_SIZE,
        telemetry: Telemetry | None = None,
    ) -> None:
        """Initialize the binder.

        Args:
            linker: Datasources and their binding configuration.
            response_format: Format used when options carry none.
            default_batch_size: Batch size used when none is given.
            telemetry: Sink for batch events.

        Raises:
            InvalidConfigError: If ``default_batch_size`` is less than 1.
        """
        if default_batch_size < 1:
            msg = f"default_batch_size must be at least 1, got {default_batch_size}"
            raise InvalidConfigError(
                msg,
                property_name="default_batch_size",
                expected_type="int",
                received_value=default_batch_size,
            )
        self._linker = linker
        self._response_format = response_format
        self._default_batch_size = default_batch_size
        self._telemetry = telemetry or NullTelemetry()
        self._log = logger.bind(component="binder")

    @classmethod
    def from_settings(
        cls,
        linker: Linker,
        settings: "AppSettings",
        response_format: ResponseFormat = ResponseFormat.FULL,
        telemetry: Telemetry | None = None,
    ) -> "DataBinder":
        """Create a binder sized by ``DATABINDER_DEFAULT_BATCH_SIZE``."""
        return cls(
            linker,
            response_format=response_format,
            default_batch_size=settings.default_batch_size,
            telemetry=telemetry,
        )

    @property
    def linker(self) -> Linker:
        """Get the underlying linker."""
        return self._linker

    async def fetch_all(
        self,
        options: FetchOptions | None = None,
    ) -> dict[str, object] | BatchIterator:
        """Fetch every selected datasource.

        Args:
            options: Shared options. ``datasource_ids`` narrows the selection;
                ``response_format`` defaults to the binder's format.

        Returns:
            A ``BatchIterator`` for the iterator format, otherwise a dict of
            datasource id to result, fetched sequentially in id order.
        """
        options = options or FetchOptions()
        response_format = options.response_format or self._response_format
        ids = (
            self._linker.datasource_ids
            if options.datasource_ids is None
            else options.datasource_ids
        )

        if response_format == ResponseFormat.ITERATOR:
            return self.iterate(ids, options.batch_size, options)

        options = options.model_copy(update={"response_format": response_format})

        results: dict[str, object] = {}
        for datasource_id in ids:
            results[datasource_id] = await self.fetch_from_datasource(
                datasource_id, options
            )
        return results

    async def fetch_from_datasource(
        self,
        datasource_id: str,
        options: FetchOptions | None = None,
    ) -> object:
        """Call one method of one datasource.

        Args:
            datasource_id: Datasource identifier.
            options: Call options; ``method_name`` selects the method.

        Returns:
            Whatever the datasource method returns.

        Raises:
            FetchError: Taxonomy errors as raised; anything else is wrapped
                as ``NetworkError``.
        """
        options = options or FetchOptions()
        method_name = options.method_name or DEFAULT_METHOD_NAME
        method = self._linker.get_method(datasource_id, method_name)

        try:
            return await method(options)
        except FetchError:
            raise
        except Exception as e:
            error = wrap_unexpected(e)
            error.context["datasource_id"] = datasource_id
            self._log.warning(
                "datasource_call_failed",
                datasource_id=datasource_id,
                datasource_method=method_name,
                **error.to_dict(),
            )
            raise error from e

    def iterate(
        self,
        datasource_ids: list[str] | None = None,
        batch_size: int | None = None,
        options: FetchOptions | None = None,
    ) -> BatchIterator:
        """Create a batch iterator.

        Args:
            datasource_ids: Datasources to read, defaulting to all linked ones.
            batch_size: Items per batch, defaulting to the binder's size.
            options: Options shared by every datasource call.

        Returns:
            A fresh, forward-only iterator.
        """
        ids = list(
            self._linker.datasource_ids if datasource_ids is None else datasource_ids
        )
        size = self._default_batch_size if batch_size is None else batch_size
        self._log.debug("iterate_started", datasource_ids=ids, batch_size=size)
        return BatchIterator(
            self._linker,
            ids,
            size,
            shared_options=options,
            telemetry=self._telemetry,
        )
