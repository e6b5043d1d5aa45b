from .spider import ORDER_CHOICES, Spider, SpiderState, load_spider_state, save_spider_state

__all__ = ["ORDER_CHOICES", "Spider", "SpiderState", "load_spider_state", "save_spider_state"]
