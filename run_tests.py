#!/usr/bin/env python3
"""
测试运行脚本
按测试层级或单个模块运行，并在运行前检查 setup.py 中声明的依赖
"""

import sys
import argparse
import importlib
import subprocess
from importlib import metadata
from pathlib import Path

ROOT = Path(__file__).parent
TEST_DIRS = {
    'unit': ROOT / 'tests' / 'unit',
    'integration': ROOT / 'tests' / 'integration',
}

# 发行包名 -> 导入名，与 setup.py 的 install_requires 和 dev 中的测试工具保持一致
REQUIRED_DISTRIBUTIONS = {
    'numpy': 'numpy',
    'opencv-python': 'cv2',
    'scipy': 'scipy',
    'PyYAML': 'yaml',
    'pytest': 'pytest',
}
COVERAGE_DISTRIBUTION = ('pytest-cov', 'pytest_cov')


def available_modules():
    """tests/unit 和 tests/integration 下可单独运行的测试模块名"""
    modules = {}
    for directory in TEST_DIRS.values():
        for path in sorted(directory.glob('test_*.py')):
            modules[path.stem[len('test_'):]] = path
    return modules


def check_dependencies(coverage=False):
    """检查依赖能否导入，打印版本"""
    required = dict(REQUIRED_DISTRIBUTIONS)
    if coverage:
        required[COVERAGE_DISTRIBUTION[0]] = COVERAGE_DISTRIBUTION[1]

    missing = []
    for distribution, module in required.items():
        try:
            importlib.import_module(module)
        except ImportError:
            missing.append(distribution)
            continue
        try:
            version = metadata.version(distribution)
        except metadata.PackageNotFoundError:
            version = 'unknown'
        print(f"[OK] {distribution} {version}")

    if missing:
        print(f"[FAIL] Missing dependencies: {', '.join(missing)}")
        print("Please install them with: pip install -e .[dev]")
        return False
    return True


def build_command(layer='all', module=None, keyword=None, verbose=False, coverage=False):
    """组装pytest命令"""
    cmd = [sys.executable, '-m', 'pytest']

    if module is not None:
        cmd.append(str(available_modules()[module]))
    elif layer == 'all':
        cmd.extend(str(directory) for directory in TEST_DIRS.values())
    else:
        cmd.append(str(TEST_DIRS[layer]))

    if keyword:
        cmd.extend(['-k', keyword])
    if verbose:
        cmd.append('-v')
    if coverage:
        cmd.extend(['--cov=robust_localizer', '--cov-report=term-missing'])

    cmd.append('--tb=short')
    return cmd


def main():
    """主函数"""
    modules = available_modules()
    parser = argparse.ArgumentParser(description='Run robust-localizer tests')
    parser.add_argument('--type', choices=['unit', 'integration', 'all'], default='all',
                        help='Test layer to run')
    parser.add_argument('--module', choices=sorted(modules),
                        help='Run a single test module, e.g. estimators or localization_pipeline')
    parser.add_argument('-k', '--keyword', help='pytest keyword expression')
    parser.add_argument('--verbose', action='store_true', help='Verbose output')
    parser.add_argument('--coverage', action='store_true', help='Report coverage of robust_localizer')
    parser.add_argument('--check-deps', action='store_true', help='Check dependencies only')
    args = parser.parse_args()

    if not check_dependencies(args.coverage):
        return False
    if args.check_deps:
        return True

    cmd = build_command(args.type, args.module, args.keyword, args.verbose, args.coverage)
    print(f"Running: {' '.join(cmd)}")
    print("-" * 60)
    return subprocess.run(cmd, cwd=ROOT).returncode == 0


if __name__ == "__main__":
    sys.exit(0 if main() else 1)
