class DeliveryPipelineError(Exception):
    """Base class for every error raised by the delivery pipeline."""


class IntegrityViolation(DeliveryPipelineError):
    """Raw inputs break a structural guarantee; the consolidation run aborts."""


class MissingColumnsError(IntegrityViolation):
    def __init__(self, table: str, missing: list):
        self.table = table
        self.missing = list(missing)
        super().__init__(f"{table}: missing required column(s): {self.missing}")


class OrphanItemError(IntegrityViolation):
    def __init__(self, order_ids: list):
        self.order_ids = sorted(order_ids)
        preview = self.order_ids[:5]
        super().__init__(
            f"order_items: {len(self.order_ids)} orphan order_id(s) "
            f"referencing non-existent orders, e.g. {preview}"
        )


class EmptyOrderError(IntegrityViolation):
    def __init__(self, order_ids: list):
        self.order_ids = sorted(order_ids)
        super().__init__(
            f"orders: {len(self.order_ids)} delivered order(s) without items, "
            f"e.g. {self.order_ids[:5]}"
        )


class DanglingReferenceError(IntegrityViolation):
    def __init__(self, table: str, key: str, values: list):
        self.table = table
        self.key = key
        self.values = sorted(values)
        super().__init__(
            f"{table}: {len(self.values)} unresolved `{key}` value(s), "
            f"e.g. {self.values[:5]}"
        )


class QualityCheckError(DeliveryPipelineError):
    def __init__(self, domain: str, failed: list):
        self.domain = domain
        self.failed = list(failed)
        super().__init__(f"{domain}: quality suite failed: {self.failed}")


class RefreshError(DeliveryPipelineError):
    """Outlier refresh failed; the previously published snapshot is kept."""
