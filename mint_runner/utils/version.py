import platform
import sys

import eth_account
import web3

from mint_runner import __version__


def get_system_info():
    """Gather version information about the runner and its environment."""
    return {
        "mint_runner": __version__,
        "web3": web3.__version__,
        "eth-account": getattr(eth_account, "__version__", "unknown"),
        "python_implementation": platform.python_implementation(),
        "python_version": sys.version.split()[0],
        "system": f"{platform.system()} {platform.release()} {platform.machine()}",
    }
