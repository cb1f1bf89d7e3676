class ChartEngineError(ValueError):
    pass


class InvalidCandleError(ChartEngineError):
    pass


class OutOfOrderError(ChartEngineError):
    pass


class EmptySeriesError(ChartEngineError):
    pass


class InvalidSeriesError(ChartEngineError):
    def __init__(self, message: str, index: int = -1) -> None:
        super().__init__(message)
        self.index = index
