from plantasy.demo.catalog import DEMO_COUPON_CODE, seed_demo_catalog

__all__ = ["DEMO_COUPON_CODE", "seed_demo_catalog"]
