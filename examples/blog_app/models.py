"""
Schema definition for the emberorm blog example.
"""

from __future__ import annotations

from emberorm import Schema, load

BLOG_SCHEMA = """
// Authors write posts; posts belong to one category and carry many tags.
model Author {
  id     Int     @id @default(autoincrement())
  name   String
  email  String  @unique
  bio    String? @default("")
  posts  Post[]
}

model Category {
  id          Int     @id @default(autoincrement())
  name        String  @unique
  description String? @default("")
  posts       Post[]
}

model Tag {
  id    Int    @id @default(autoincrement())
  label String @unique
  posts Post[]
}

model Post {
  id         Int      @id @default(autoincrement())
  title      String
  body       String
  published  Boolean  @default(false)
  createdAt  DateTime @default(now()) @map("created_at")
  authorId   Int      @map("author_id")
  author     Author   @relation(fields: [authorId], references: [id])
  categoryId Int      @map("category_id")
  category   Category @relation(fields: [categoryId], references: [id])
  tags       Tag[]
}
"""


def load_blog_schema() -> Schema:
    return load(BLOG_SCHEMA)
