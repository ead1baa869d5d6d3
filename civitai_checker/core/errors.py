"""
异常定义

"未找到"（元数据缺失、版本无法识别、缓存中没有）一律用返回值表达，
只有需要中断调用流程的失败才抛出这里的异常。
"""


class CheckerError(Exception):
    """所有业务异常的基类，CLI 在命令边界统一捕获"""


class ConfigError(CheckerError):
    """配置文件或设置项无效"""


class MetadataUnavailableError(CheckerError):
    """下载前无法获取模型元数据"""


class DownloadFailedError(CheckerError):
    """Download Sink 明确返回了失败"""
