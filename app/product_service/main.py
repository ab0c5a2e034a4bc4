# app/product_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Product Catalog (dev mock)")


PRODUCTS = {
    "p-clear-case": {
        "_id": "p-clear-case",
        "name": "Clear Shockproof Case",
        "images": ["/images/clear-case.jpg"],
        "price": 499,
        "discountPrice": 399,
        "gstRate": 18,
        "countInStock": 40,
        "colors": [
            {"name": "Transparent", "hexCode": "#FFFFFF", "inStock": True},
            {"name": "Smoke", "hexCode": "#555555", "inStock": False},
        ],
    },
    "p-leather-wallet": {
        "_id": "p-leather-wallet",
        "name": "Leather Wallet Case",
        "images": ["/images/leather-wallet.jpg"],
        "price": 999,
        "discountPrice": 0,
        "gstRate": 18,
        "countInStock": 12,
        "colors": [
            {"name": "Tan", "hexCode": "#A0522D", "inStock": True},
            {"name": "Black", "hexCode": "#000000", "inStock": True},
        ],
    },
    "p-tempered-glass": {
        "_id": "p-tempered-glass",
        "name": "Tempered Glass Screen Guard",
        "images": ["/images/tempered-glass.jpg"],
        "price": 249,
        "gstRate": 18,
        "countInStock": 100,
        "colors": [],
    },
    "p-fast-charger": {
        "_id": "p-fast-charger",
        "name": "20W USB-C Fast Charger",
        "images": ["/images/fast-charger.jpg"],
        "price": 1299,
        "discountPrice": 1099,
        "gstRate": 18,
        "countInStock": 3,
        "colors": [],
    },
}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
