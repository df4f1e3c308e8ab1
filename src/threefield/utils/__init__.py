from threefield.utils.run_info import print_run_header, print_setup_summary
from threefield.utils.timing import Timer

__all__ = ["Timer", "print_run_header", "print_setup_summary"]
