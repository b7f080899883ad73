import os
import logging
import contextvars
from logging import Handler, LogRecord, Formatter, Filter

# name of the pipeline task the current coroutine belongs to, i.e. merge_replicate:A_R1
TASK = contextvars.ContextVar("atacflow_task", default="-")


class TaskFilter(Filter):
    def filter(self, record: LogRecord) -> bool:
        record.task = TASK.get()
        return True


def config_logging(logfolder: str, level: str = "INFO"):
    assert os.path.isdir(logfolder)
    logging.basicConfig(level=level, format="%(levelname)s: %(name)s: %(message)s")
    logger = logging.getLogger()
    logger.setLevel(level)

    # a single per-file handler, the latest run folder wins
    for h in list(logger.handlers):
        if isinstance(h, PerFileHandler):
            logger.removeHandler(h)
            h.close()

    handler = PerFileHandler(logfolder)
    handler.setLevel(logging.DEBUG)
    handler.addFilter(TaskFilter())
    handler.setFormatter(Formatter("%(asctime)s: %(levelname)s: [%(task)s] %(message)s"))
    logger.addHandler(handler)
    return handler


class PerFileHandler(Handler):
    """
    Records of each module go to their own file, i.e. logs/atacflow.wrappers.picard.log.
    Records emitted inside a pipeline task are also collected in logs/tasks/<task>.log
    """
    def __init__(self, logfolder, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.logfolder = logfolder
        self.__files = {}

    def _write(self, file: str, message: str):
        if file not in self.__files:
            os.makedirs(os.path.dirname(file), exist_ok=True)
            self.__files[file] = open(file, 'a')
        print(message, file=self.__files[file], flush=True)

    def emit(self, record: LogRecord) -> None:
        message = self.format(record)
        self._write(os.path.join(self.logfolder, f"{record.name}.log"), message)
        task = getattr(record, "task", "-")
        if task != "-":
            self._write(os.path.join(self.logfolder, "tasks", f"{task.replace(':', '.')}.log"), message)

    def close(self) -> None:
        for f in self.__files.values():
            f.close()
        self.__files.clear()
        super().close()
