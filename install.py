#!/usr/bin/env python3
"""Cross-platform install script for agentshell.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes test tools)
"""

import os
import platform
import shutil
import stat
import subprocess
import sys

MIN_PYTHON = (3, 11)


def main() -> None:
    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"

    bin_dir = "Scripts" if is_windows else "bin"
    pip = os.path.join(venv_dir, bin_dir, "pip")

    # 2. Create virtual environment
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    # 3. Upgrade pip
    print("Upgrading pip...")
    subprocess.check_call([pip, "install", "--upgrade", "pip"])

    # 4. Install project
    if dev:
        print("Installing agentshell in development mode...")
        subprocess.check_call([pip, "install", "-e", ".[dev]"], cwd=project_dir)
    else:
        print("Installing agentshell...")
        subprocess.check_call([pip, "install", "."], cwd=project_dir)

    # 5. Make bundled tools executable (archives and some checkouts drop the bit)
    tools_dir = os.path.join(project_dir, "tools")
    if os.path.isdir(tools_dir) and not is_windows:
        for name in sorted(os.listdir(tools_dir)):
            path = os.path.join(tools_dir, name)
            if os.path.isfile(path) and not name.startswith("."):
                mode = os.stat(path).st_mode
                os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
                print(f"Tool ready: {name}")

    # 6. Copy config files if missing
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if not os.path.exists(dst_path) and os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")
        elif os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")

    # 7. Print instructions
    if is_windows:
        activate_cmd = r".\.venv\Scripts\activate"
    else:
        activate_cmd = "source .venv/bin/activate"

    print()
    print("=" * 50)
    print("  agentshell installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    print("  1. Edit config.yaml - pick an LLM backend (llm, anthropic or stub)")
    print("  2. Edit .env - set your keys:")
    print("       ANTHROPIC_API_KEY=sk-ant-...")
    print("       AGENTSHELL_TELEGRAM_TOKEN=...")
    print("  3. Activate the virtual environment:")
    print(f"       {activate_cmd}")
    print("  4. Talk to the default agent:")
    print('       agentshell "Hello"')
    print("  5. Or check config and tools:")
    print("       agentshell config")
    print("       agentshell tools")
    print()


if __name__ == "__main__":
    main()
