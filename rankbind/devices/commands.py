import shutil
import subprocess

import rankbind.defaults as defaults


class Command:
    """
    Base class for a controlled external command.
    """

    name = None

    def __init__(self, path=None):
        self.path = path or self.name

    def which(self):
        """
        Locate the executable, or None if it is not on the PATH.
        """
        return shutil.which(self.path)

    def run(self, command, shell: bool = False):
        """
        Run a subprocess command and return stripped stdout.
        """
        try:
            result = subprocess.run(
                command, shell=shell, capture_output=True, text=True, check=True
            )
            return result.stdout.strip()
        except subprocess.CalledProcessError as e:
            cmd_str = command if shell else " ".join(command)
            raise RuntimeError(
                f"Command '{cmd_str}' failed with exit code {e.returncode}: {e.stderr.strip()}"
            ) from e
        except FileNotFoundError as e:
            cmd_str = command[0] if isinstance(command, list) else command.split()[0]
            raise RuntimeError(f"Command not found: '{cmd_str}'") from e


class RocminfoCommand(Command):
    name = defaults.rocminfo

    def get_listing(self) -> str:
        """
        Return the raw agent listing. No arguments are passed, the command is static.
        """
        return self.run([self.path], shell=False)


class NumactlCommand(Command):
    name = defaults.numactl

    def prefix(self, numa_nodes: str = None, cpu_cores: str = None) -> list:
        """
        Build the argv prefix that binds a child to nodes or to explicit cores.
        """
        executable = self.which()
        if not executable:
            raise RuntimeError(f"Command not found: '{self.path}'")
        if cpu_cores:
            return [executable, f"--physcpubind={cpu_cores}"]
        if numa_nodes:
            return [executable, f"--cpunodebind={numa_nodes}"]
        return []
