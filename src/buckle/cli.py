# src/buckle/cli.py

import sys
from typing import List, Optional

from buckle import launcher, log_utils
from buckle.exceptions import BuckleError, CacheCorruptedError


def main(argv: Optional[List[str]] = None) -> None:
    """
    Console entry point.

    Every argument after the program name belongs to the launched binary, so no
    option parsing happens here. Application errors are reported on stderr and
    turned into exit status 1; the binary's own exit status is passed through.
    """
    argv = sys.argv if argv is None else argv
    try:
        exit_code = launcher.run(argv)
    except CacheCorruptedError as e:
        log_utils.logger.error(str(e))
        log_utils.logger.error(f"Run '{e.remedy}' and try again.")
        sys.exit(1)
    except BuckleError as e:
        log_utils.logger.error(str(e))
        sys.exit(1)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
