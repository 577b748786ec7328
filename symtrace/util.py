# Copyright (C) 2025 ByteDance Inc.
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import os
from typing import IO, List, Optional, Sequence, Tuple


VERBOSE = False


def open_file_with_fallback(
    path: str, lookup_dirs: Optional[Sequence[str]] = None, binary: bool = False
) -> Tuple[IO, str]:
    """
    Open `path` for reading. If it does not exist as given, try the same
    file name inside each of `lookup_dirs` in order. With `binary` the file
    is opened in "rb" mode and decoding is left to the caller.

    Returns the open file object and the path that was actually opened.
    """
    candidates: List[str] = [path]
    file_name = os.path.basename(path)

    for lookup_dir in lookup_dirs or []:
        candidates.append(os.path.join(lookup_dir, file_name))

    for candidate in candidates:
        if os.path.isfile(candidate):
            if verbose():
                print(f"open: {candidate}")
            if binary:
                return open(candidate, "rb"), candidate
            return open(candidate, "r", encoding="utf-8"), candidate

    raise FileNotFoundError(f"could not find {path} (looked in {len(candidates)} places)")


class ANSI:
    END = "\033[0m"
    BOLD = "\033[1m"
    RED = "\033[91m"
    BLACK = "\033[30m"
    BLUE = "\033[94m"
    BG_YELLOW = "\033[43m"
    BG_BLUE = "\033[44m"


def prt(msg, colors=ANSI.END):
    print(colors + f"{msg}" + ANSI.END)


def set_verbose(flag: bool):
    global VERBOSE
    VERBOSE = flag


def verbose() -> bool:
    return VERBOSE
