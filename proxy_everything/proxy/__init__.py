from .forwarder import Forwarder, UpstreamResponse
from .html_rewriter import HtmlRewriter, RootRelativeAttributeRewriter
from .models import InboundRequest, ProxyError, ProxyErrorKind, TargetDescriptor
from .pipeline import ProxyPipeline

__all__ = [
    "Forwarder",
    "UpstreamResponse",
    "HtmlRewriter",
    "RootRelativeAttributeRewriter",
    "InboundRequest",
    "ProxyError",
    "ProxyErrorKind",
    "TargetDescriptor",
    "ProxyPipeline",
]
