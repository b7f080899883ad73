class PipelineError(Exception):
    pass


class ConfigurationError(PipelineError):
    """Bad or missing design table / reference files. Fatal for the whole run, raised before any task starts"""


class AlignmentError(PipelineError):
    """Malformed or unsortable alignment artifact. Fatal for the key's branch only"""


class AggregationError(PipelineError):
    """Fan-in with incomplete inputs. Fatal for the dependent stage only"""


class ResourceHintMissing(UserWarning):
    pass


class InsufficientMemoryWarning(ResourceHintMissing):
    pass
