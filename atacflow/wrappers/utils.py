import os
import shutil
import logging
import asyncio
import subprocess
from subprocess import CalledProcessError, PIPE


async def run(cmd: [str], logger: logging.Logger = None, logbefore: str = None, logafter: str = None,
              logstdout: bool = True, stdout=PIPE, stderr=PIPE) -> subprocess.CompletedProcess:
    """Run command cmd in the default executor and return the completed process. Logs before and after if asked"""
    if logger is None:
        logger = logging.getLogger(__name__)
    cmd = [str(x) for x in cmd]
    if logbefore:
        logger.debug(logbefore)
    try:
        result = await asyncio.get_event_loop().run_in_executor(
            None, lambda: subprocess.run(cmd, check=True, stdout=stdout, stderr=stderr))
    except CalledProcessError as e:
        logger.error(f"Command failed with exit code {e.returncode}: {' '.join(cmd)}")
        for stream in (e.stdout, e.stderr):
            if stream:
                logger.error(stream.decode(errors="replace"))
        raise

    if logstdout and result.stdout is not None:
        logger.debug(result.stdout.decode(errors="replace"))

    if logafter:
        logger.debug(logafter)
    return result


async def shell(cmd: str, logger: logging.Logger = None, logbefore: str = None, logafter: str = None) -> int:
    """Run a shell pipeline, the exit code of the pipeline must be zero"""
    if logger is None:
        logger = logging.getLogger(__name__)
    if logbefore:
        logger.debug(logbefore)
    process = await asyncio.subprocess.create_subprocess_shell(
        f"set -o pipefail; {cmd}", stderr=PIPE, executable="/bin/bash"
    )
    _, err = await process.communicate()
    if process.returncode != 0:
        logger.error(err.decode(errors="replace"))
        raise CalledProcessError(process.returncode, cmd, stderr=err)
    if logafter:
        logger.debug(logafter)
    return process.returncode


def replace_bam(src: str, dst: str) -> str:
    if os.path.exists(dst):
        os.remove(dst)
    if os.path.exists(dst + '.bai'):
        os.remove(dst + '.bai')  # index is not valid anymore
    shutil.move(src, dst)
    return dst
