"""版本信息管理"""

VERSION_INFO = {
    'major': 0,
    'minor': 3,
    'patch': 0,
    'status': 'beta'  # dev, alpha, beta, rc, stable
}

__version__ = f"{VERSION_INFO['major']}.{VERSION_INFO['minor']}.{VERSION_INFO['patch']}"


def get_version_info():
    """获取详细版本信息(副本)"""
    return dict(VERSION_INFO)


def get_version_string(with_status: bool = False):
    """获取版本字符串, 可附带发布状态"""
    if with_status and VERSION_INFO['status'] != 'stable':
        return f"{__version__}-{VERSION_INFO['status']}"
    return __version__
